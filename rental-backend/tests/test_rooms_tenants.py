from datetime import date

import pytest

from extensions import db
from models.room import Room


def tenant_payload(**fields):
    data = {
        'name': 'Trần Thị Bình',
        'phone': '0987654321',
        'email': 'Binh.Tran@Example.com',
        'idCard': '079123456789',
        'dateOfBirth': '1998-03-12',
        'gender': 'female',
        'address': {'street': '45 Nguyễn Huệ', 'ward': 'Bến Nghé', 'district': 'Quận 1', 'city': 'TP.HCM'},
        'emergencyContact': {'name': 'Trần Văn Cường', 'phone': '0912345678', 'relationship': 'Bố'},
        'occupation': 'Nhân viên văn phòng',
    }
    data.update(fields)
    return data


def test_create_room(client):
    response = client.post('/api/rooms', json={
        'number': '101',
        'name': 'Phòng 101',
        'price': 1500000,
        'area': 25,
        'floor': 2,
        'amenities': {'hasWifi': True, 'hasBalcony': 'true'},
    })

    assert response.status_code == 201
    data = response.get_json()['data']
    assert data['status'] == 'available'
    assert data['price'] == 1500000
    assert data['amenities']['hasWifi'] is True
    assert data['amenities']['hasBalcony'] is True
    assert data['amenities']['hasAirConditioner'] is False
    assert data['tenant'] is None


def test_create_room_reports_missing_fields(client):
    response = client.post('/api/rooms', json={'number': '101'})

    assert response.status_code == 400
    assert response.get_json()['errors'] == [
        'Tên phòng là bắt buộc',
        'Giá phòng là bắt buộc',
        'Diện tích phòng là bắt buộc',
        'Tầng là bắt buộc',
    ]


def test_duplicate_room_number(client, make_room):
    make_room('101')

    response = client.post('/api/rooms', json={'number': '101', 'name': 'Khác', 'price': 1, 'area': 1, 'floor': 1})

    assert response.status_code == 400
    assert response.get_json()['message'] == 'number đã tồn tại'


def test_room_update_cannot_assign_tenant(client, make_room, make_tenant):
    room = make_room()
    tenant = make_tenant()

    response = client.put(f'/api/rooms/{room.id}', json={'tenantId': tenant.id})

    assert response.status_code == 400
    assert room.tenant_id is None


def test_room_without_tenant_cannot_be_marked_occupied(client, make_room):
    room = make_room()

    response = client.put(f'/api/rooms/{room.id}', json={'status': 'occupied', 'name': 'Phòng góc'})

    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['status'] == 'available'
    assert data['name'] == 'Phòng góc'


def test_room_can_go_to_maintenance(client, make_room):
    room = make_room()

    response = client.put(f'/api/rooms/{room.id}', json={'status': 'maintenance'})

    assert response.get_json()['data']['status'] == 'maintenance'


@pytest.mark.parametrize('status', ['maintenance', 'reserved', 'available'])
def test_occupied_room_keeps_status_while_tenant_attached(client, make_room, make_contract, status):
    room = make_room()
    contract = make_contract(room=room)

    response = client.put(f'/api/rooms/{room.id}', json={'status': status})

    assert response.status_code == 400
    assert response.get_json()['message'] == 'Phòng đang có khách thuê, không thể đổi trạng thái'
    assert room.status == 'occupied'
    assert room.tenant_id == contract.tenant_id


def test_list_rooms_is_paginated_and_sorted(client, make_room):
    for number in ('103', '101', '102'):
        make_room(number)

    response = client.get('/api/rooms?limit=2')

    body = response.get_json()
    assert [room['number'] for room in body['data']] == ['101', '102']
    assert body['pagination'] == {
        'currentPage': 1,
        'totalPages': 2,
        'totalItems': 3,
        'itemsPerPage': 2,
        'hasNext': True,
        'hasPrev': False,
    }

    response = client.get('/api/rooms?sortBy=number&sortOrder=desc&search=10')
    assert [room['number'] for room in response.get_json()['data']][:1] == ['103']


def test_room_delete_guards(client, make_room, make_tenant, make_contract):
    occupied = make_room('101')
    contract = make_contract(room=occupied)

    response = client.delete(f'/api/rooms/{occupied.id}')
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Không thể xóa phòng đang có khách thuê'

    client.put(f'/api/contracts/{contract.id}/terminate', json={'reason': 'trả phòng'})
    response = client.delete(f'/api/rooms/{occupied.id}')
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Không thể xóa phòng có hợp đồng hoặc thanh toán liên quan'

    empty = make_room('102')
    response = client.delete(f'/api/rooms/{empty.id}')
    assert response.status_code == 200
    assert empty.is_active is False
    numbers = [room['number'] for room in client.get('/api/rooms').get_json()['data']]
    assert numbers == ['101']


def test_create_tenant(client):
    response = client.post('/api/tenants', json=tenant_payload())

    assert response.status_code == 201
    data = response.get_json()['data']
    assert data['email'] == 'binh.tran@example.com'
    assert data['status'] == 'active'
    assert data['fullAddress'] == '45 Nguyễn Huệ, Bến Nghé, Quận 1, TP.HCM'
    assert data['emergencyContact']['relationship'] == 'Bố'
    assert data['room'] is None


def test_create_tenant_with_room_moves_in(client, make_room):
    room = make_room()

    response = client.post('/api/tenants', json=tenant_payload(roomId=room.id, moveInDate='2024-01-01'))

    assert response.status_code == 201
    data = response.get_json()['data']
    assert data['roomId'] == room.id
    assert data['moveInDate'] == '2024-01-01'
    assert room.status == 'occupied'
    assert room.tenant_id == data['id']


def test_tenant_field_validation(client):
    response = client.post('/api/tenants', json=tenant_payload(phone='12345'))

    assert response.status_code == 400
    assert response.get_json()['errors'] == ['Số điện thoại không hợp lệ']

    response = client.post('/api/tenants', json=tenant_payload(dateOfBirth='2030-01-01'))
    assert response.get_json()['errors'] == ['Ngày sinh phải nhỏ hơn ngày hiện tại']


def test_tenant_unique_fields(client):
    client.post('/api/tenants', json=tenant_payload())

    response = client.post('/api/tenants', json=tenant_payload(phone='0987000000', idCard='079000000001'))
    assert response.status_code == 400
    assert response.get_json()['message'] == 'email đã tồn tại'

    response = client.post('/api/tenants', json=tenant_payload(phone='0987000000', email='khac@example.com'))
    assert response.get_json()['message'] == 'idCard đã tồn tại'


def test_move_in_and_move_out(client, make_room, make_tenant):
    room = make_room()
    tenant = make_tenant()

    response = client.put(f'/api/tenants/{tenant.id}/move-in', json={'roomId': room.id})
    assert response.status_code == 200
    assert room.status == 'occupied'
    assert room.tenant_id == tenant.id
    assert tenant.room_id == room.id
    assert tenant.move_in_date == date(2024, 1, 1)

    response = client.put(f'/api/tenants/{tenant.id}/move-out',
                          json={'moveOutDate': '2024-02-15', 'reason': 'Chuyển công tác'})
    assert response.status_code == 200
    assert room.status == 'available'
    assert room.tenant_id is None
    assert tenant.room_id is None
    assert tenant.status == 'moved_out'
    assert tenant.move_out_date == date(2024, 2, 15)
    assert 'Lý do chuyển đi: Chuyển công tác' in tenant.notes


def test_move_in_to_occupied_room_fails(client, make_room, make_tenant):
    room = make_room()
    first = make_tenant()
    second = make_tenant()
    client.put(f'/api/tenants/{first.id}/move-in', json={'roomId': room.id})

    response = client.put(f'/api/tenants/{second.id}/move-in', json={'roomId': room.id})

    assert response.status_code == 400
    assert response.get_json()['message'] == 'Phòng không có sẵn'
    assert room.tenant_id == first.id
    assert second.room_id is None


def test_move_in_releases_previous_room(client, make_room, make_tenant):
    old_room = make_room('101')
    new_room = make_room('102')
    tenant = make_tenant()
    client.put(f'/api/tenants/{tenant.id}/move-in', json={'roomId': old_room.id})

    client.put(f'/api/tenants/{tenant.id}/move-in', json={'roomId': new_room.id})

    assert old_room.status == 'available'
    assert old_room.tenant_id is None
    assert new_room.status == 'occupied'
    assert new_room.tenant_id == tenant.id
    assert tenant.room_id == new_room.id


def test_move_out_without_room_fails(client, make_tenant):
    tenant = make_tenant()

    response = client.put(f'/api/tenants/{tenant.id}/move-out', json={})

    assert response.status_code == 400
    assert response.get_json()['message'] == 'Khách thuê không đang thuê phòng nào'


def test_tenant_status_change_releases_room(client, make_room, make_tenant):
    room = make_room()
    tenant = make_tenant()
    client.put(f'/api/tenants/{tenant.id}/move-in', json={'roomId': room.id})

    response = client.put(f'/api/tenants/{tenant.id}', json={'status': 'inactive'})

    assert response.status_code == 200
    assert tenant.status == 'inactive'
    assert room.status == 'available'
    assert room.tenant_id is None


def test_tenant_delete_guards(client, make_room, make_tenant):
    room = make_room()
    tenant = make_tenant()
    client.put(f'/api/tenants/{tenant.id}/move-in', json={'roomId': room.id})

    response = client.delete(f'/api/tenants/{tenant.id}')
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Không thể xóa khách thuê đang thuê phòng'

    client.put(f'/api/tenants/{tenant.id}/move-out', json={})
    response = client.delete(f'/api/tenants/{tenant.id}')
    assert response.status_code == 200
    assert client.get(f'/api/tenants/{tenant.id}').status_code == 404


def test_room_status_follows_tenant_on_save(make_room, make_tenant):
    room = make_room()
    room.tenant = make_tenant()
    db.session.commit()
    assert room.status == 'occupied'

    room.tenant = None
    db.session.commit()
    assert db.session.get(Room, room.id).status == 'available'


def test_room_stats(client, make_room, make_contract):
    make_contract(room=make_room('101'))
    make_room('102')
    make_room('201', floor=2, status='maintenance')

    response = client.get('/api/rooms/stats/overview')

    overview = response.get_json()['data']['overview']
    assert overview['totalRooms'] == 3
    assert overview['occupiedRooms'] == 1
    assert overview['availableRooms'] == 1
    assert overview['maintenanceRooms'] == 1
    assert overview['occupancyRate'] == 33.3


def test_update_tenant_rejects_non_numeric_room(client, make_tenant):
    tenant = make_tenant()

    response = client.put(f'/api/tenants/{tenant.id}', json={'roomId': 'phong-101'})

    assert response.status_code == 400
    assert response.get_json()['errors'] == ['Mã phòng không hợp lệ']
    assert tenant.room_id is None
