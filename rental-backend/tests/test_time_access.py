import pytest


@pytest.fixture
def gated_app(app):
    app.config['ACCESS_CONTROL_ENABLED'] = True
    return app


def test_requests_blocked_during_maintenance_window(gated_app, client, clock):
    clock.set(2024, 1, 1, 3, 15)

    response = client.get('/api/rooms')

    assert response.status_code == 503
    body = response.get_json()
    assert body['success'] is False
    assert body['message'] == 'Hệ thống đang bảo trì'
    assert body['maintenanceWindow'] == {'start': '2:00', 'end': '5:00', 'timezone': 'Asia/Ho_Chi_Minh'}
    assert body['currentTime'] == '03:15:00 01/01/2024'
    assert body['nextAccessTime'] == '05:00:00 01/01/2024'


@pytest.mark.parametrize('hour, minute, status', [
    (1, 59, 200),
    (2, 0, 503),
    (4, 59, 503),
    (5, 0, 200),
])
def test_window_is_half_open(gated_app, client, clock, hour, minute, status):
    clock.set(2024, 1, 1, hour, minute)

    assert client.get('/api/rooms').status_code == status


@pytest.mark.parametrize('path', ['/health', '/api/health/system'])
def test_health_routes_are_blocked_too(gated_app, client, clock, path):
    clock.set(2024, 1, 1, 3)

    response = client.get(path)

    assert response.status_code == 503
    assert response.get_json()['message'] == 'Hệ thống đang bảo trì'


def test_gate_can_be_disabled(app, client, clock):
    clock.set(2024, 1, 1, 3)

    assert client.get('/api/rooms').status_code == 200


def test_backup_window_blocks_writes_only(app, client, clock):
    app.config['BACKUP_WINDOW_ENABLED'] = True
    clock.set(2024, 1, 1, 2, 15)
    room = {'number': '101', 'name': 'Phòng 101', 'price': 800000, 'area': 20, 'floor': 1}

    response = client.post('/api/rooms', json=room)
    assert response.status_code == 503
    body = response.get_json()
    assert body['message'] == 'Hệ thống đang backup dữ liệu'
    assert body['backupWindow']['start'] == '2:00'
    assert body['backupWindow']['end'] == '2:30'

    assert client.get('/api/rooms').status_code == 200

    clock.set(2024, 1, 1, 2, 31)
    assert client.post('/api/rooms', json=room).status_code == 201


def test_server_time_headers_follow_client_timezone(app, client):
    response = client.get('/api/rooms', headers={'X-Client-Timezone': 'Europe/Paris'})

    assert response.headers['X-Server-Timezone'] == 'Asia/Ho_Chi_Minh'
    assert response.headers['X-Server-Time'].startswith('2024-01-01T09:00:00')

    assert 'X-Server-Timezone' not in client.get('/api/rooms').headers


def test_unknown_endpoint(client):
    response = client.get('/api/khong-ton-tai')

    assert response.status_code == 404
    assert response.get_json() == {
        'success': False,
        'message': 'Endpoint không tồn tại',
        'path': '/api/khong-ton-tai',
    }
