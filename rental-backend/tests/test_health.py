import os
import urllib.error

import pytest

from controllers import health_controller
from models.room import Room
from utils import discord


@pytest.fixture
def qr_online(monkeypatch):
    urls = []

    def probe(url, method='HEAD', timeout=5):
        urls.append(url)
        return 200

    monkeypatch.setattr(health_controller, 'probe_url', probe)
    return urls


def test_format_bytes():
    assert health_controller.format_bytes(0) == '0 Bytes'
    assert health_controller.format_bytes(512) == '512 Bytes'
    assert health_controller.format_bytes(1536) == '1.5 KB'
    assert health_controller.format_bytes(5 * 1024 * 1024) == '5 MB'


def test_overall_status():
    assert health_controller.overall_status({'a': {'status': 'healthy'}}) == 'healthy'
    assert health_controller.overall_status({'a': {'status': 'healthy'}, 'b': {'status': 'warning'}}) == 'warning'
    assert health_controller.overall_status({'a': {'status': 'warning'}, 'b': {'status': 'unhealthy'}}) == 'unhealthy'


def test_server_health(client):
    body = client.get('/health').get_json()

    assert body['message'] == 'Server đang hoạt động'
    assert body['timezone'] == 'Asia/Ho_Chi_Minh'
    assert body['timestamp'].startswith('2024-01-01T09:00:00')


def test_health_warns_without_discord(client, qr_online):
    response = client.get('/api/health')

    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['status'] == 'warning'
    assert data['checks']['database']['status'] == 'healthy'
    assert data['checks']['discord'] == {
        'status': 'warning',
        'configured': False,
        'message': 'Discord webhook chưa được cấu hình',
    }
    assert data['checks']['qr']['responseStatus'] == 200
    assert qr_online == ['https://img.vietqr.io/image/bidv-3950630937-print.jpg']
    assert data['checks']['timezone']['utcOffset'] == 420


def test_health_all_healthy(app, client, qr_online, monkeypatch):
    app.config['DISCORD_WEBHOOK_URL'] = 'https://discord.example/api/webhooks/1/abc'
    monkeypatch.setattr(discord, 'fetch_webhook_info', lambda: {'name': 'Phòng trọ', 'channel_id': '10'})
    os.makedirs(app.config['BACKUP_DIR'], exist_ok=True)

    data = client.get('/api/health').get_json()['data']

    assert data['status'] == 'healthy'
    assert data['checks']['discord']['webhookName'] == 'Phòng trọ'
    assert data['checks']['backup']['totalBackups'] == 0


def test_health_unhealthy_returns_503(client, monkeypatch):
    def offline(url, method='HEAD', timeout=5):
        raise urllib.error.URLError('no route')

    monkeypatch.setattr(health_controller, 'probe_url', offline)

    response = client.get('/api/health')

    assert response.status_code == 503
    assert response.get_json()['data']['checks']['qr']['status'] == 'unhealthy'

    response = client.get('/api/health/qr')
    assert response.status_code == 500
    assert response.get_json()['message'] == 'Lỗi khi kiểm tra QR service'


def test_health_db_write_test_leaves_no_rows(client, make_room):
    make_room('101')

    response = client.get('/api/health/db')

    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['writeTest'] == 'passed'
    assert {'rooms', 'tenants', 'contracts', 'payments', 'notes'} <= set(data['tables'])
    assert data['documentCounts']['rooms'] == 1
    assert Room.query.count() == 1


def test_health_qr(client, qr_online):
    data = client.get('/api/health/qr').get_json()['data']

    assert data['configured'] is True
    assert data['config']['accountName'] == 'Pham Thi Luyen'
    assert data['testUrl'] == 'https://img.vietqr.io/image/bidv-3950630937-print.jpg'


def test_health_qr_not_configured(app, client):
    app.config['QR_ACCOUNT_NUMBER'] = ''

    data = client.get('/api/health/qr').get_json()['data']

    assert data['status'] == 'warning'
    assert data['config'] == {'bankCode': True, 'accountNumber': False, 'accountName': True}


def test_health_discord(client):
    data = client.get('/api/health/discord').get_json()['data']

    assert data['status'] == 'warning'
    assert data['timestamp'].startswith('2024-01-01T09:00:00')


def test_health_system(client):
    data = client.get('/api/health/system').get_json()['data']

    assert data['status'] == 'healthy'
    assert 'maxRss' in data['memory']
    assert data['env']['timezone'] == 'Asia/Ho_Chi_Minh'
