from datetime import date, datetime

import pytest

from extensions import db
from models.contract import Contract
from models.payment import Payment
from services import contract_service
from services.errors import PreconditionFailed, ValidationError


def test_create_contract_links_room_tenant_and_first_payment(make_room, make_tenant, make_contract):
    room = make_room('R101')
    tenant = make_tenant()

    contract = make_contract(room=room, tenant=tenant)

    assert contract.contract_number == 'HD20240001'
    assert contract.status == 'active'
    assert room.status == 'occupied'
    assert room.tenant_id == tenant.id
    assert tenant.room_id == room.id
    assert tenant.status == 'active'
    assert tenant.move_in_date == date(2024, 1, 1)

    payment = Payment.query.filter_by(contract_id=contract.id).one()
    assert payment.payment_code == 'TT2024010001'
    assert (payment.month, payment.year) == (1, 2024)
    assert payment.due_date == datetime(2024, 1, 5)
    assert payment.rent_amount == 800000
    assert payment.electricity_usage == 0
    assert payment.water_usage == 0
    assert payment.total_amount == 800000
    assert payment.status == 'pending'


def test_mark_paid_then_second_pay_is_rejected(client, make_contract):
    contract = make_contract()
    payment = Payment.query.filter_by(contract_id=contract.id).one()

    response = client.put(f'/api/payments/{payment.id}/pay', json={'paymentMethod': 'bank_transfer'})
    assert response.status_code == 200
    body = response.get_json()
    assert body['data']['status'] == 'paid'
    assert body['data']['paidDate'] == '2024-01-01T09:00:00'
    assert body['data']['paymentMethod'] == 'bank_transfer'
    assert body['data']['statusHistory'][-1]['status'] == 'paid'

    response = client.put(f'/api/payments/{payment.id}/pay', json={})
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Thanh toán đã được thanh toán'


def test_contract_on_unavailable_room_leaves_everything_untouched(client, make_room, make_tenant, contract_payload):
    room = make_room('R102', status='maintenance')
    tenant = make_tenant()

    response = client.post('/api/contracts', json=contract_payload(room, tenant))

    assert response.status_code == 400
    assert response.get_json()['message'] == 'Phòng không có sẵn để tạo hợp đồng'
    assert Contract.query.count() == 0
    assert Payment.query.count() == 0
    db.session.refresh(room)
    db.session.refresh(tenant)
    assert room.status == 'maintenance'
    assert room.tenant_id is None
    assert tenant.room_id is None
    assert tenant.move_in_date is None


def test_contract_with_missing_room_is_rejected(client, make_tenant, contract_payload, make_room):
    room = make_room()
    tenant = make_tenant()
    payload = contract_payload(room, tenant, roomId=9999)

    response = client.post('/api/contracts', json=payload)

    assert response.status_code == 400
    assert response.get_json()['message'] == 'Phòng hoặc khách thuê không tồn tại'


def test_end_date_must_follow_start_date(client, make_room, make_tenant, contract_payload):
    room = make_room()
    tenant = make_tenant()

    response = client.post('/api/contracts', json=contract_payload(room, tenant, endDate='2024-01-01'))

    assert response.status_code == 400
    assert 'Ngày kết thúc phải sau ngày bắt đầu' in response.get_json()['errors']
    assert Contract.query.count() == 0
    db.session.refresh(room)
    assert room.status == 'available'


def test_end_date_is_checked_again_on_save(make_contract):
    contract = make_contract()

    contract.end_date = date(2023, 12, 1)
    with pytest.raises(ValidationError):
        db.session.flush()
    db.session.rollback()


def test_terminate_releases_room_and_tenant(client, clock, make_room, make_tenant, make_contract):
    room = make_room('R101')
    tenant = make_tenant()
    contract = make_contract(room=room, tenant=tenant)
    clock.set(2024, 3, 1, 10)

    response = client.put(f'/api/contracts/{contract.id}/terminate', json={'reason': 'khách chuyển đi'})

    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['status'] == 'terminated'
    assert data['terminationReason'] == 'khách chuyển đi'
    assert data['terminationDate'] == '2024-03-01T10:00:00'
    assert room.status == 'available'
    assert room.tenant_id is None
    assert tenant.room_id is None
    assert tenant.status == 'moved_out'
    assert tenant.move_out_date == date(2024, 3, 1)


def test_terminate_requires_active_contract(client, make_contract):
    contract = make_contract()
    client.put(f'/api/contracts/{contract.id}/terminate', json={'reason': 'hết nhu cầu'})

    response = client.put(f'/api/contracts/{contract.id}/terminate', json={})

    assert response.status_code == 400
    assert response.get_json()['message'] == 'Chỉ có thể kết thúc hợp đồng đang hoạt động'


def test_renew_appends_history_and_extends_end_date(client, make_contract):
    contract = make_contract()

    response = client.put(f'/api/contracts/{contract.id}/renew',
                          json={'newEndDate': '2025-06-30', 'reason': 'Khách ở thêm'})

    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['status'] == 'renewed'
    assert data['endDate'] == '2025-06-30'
    assert data['renewalHistory'] == [{
        'oldEndDate': '2024-12-31',
        'newEndDate': '2025-06-30',
        'renewalDate': '2024-01-01T09:00:00',
        'reason': 'Khách ở thêm',
    }]

    response = client.put(f'/api/contracts/{contract.id}/renew', json={'newEndDate': '2025-12-31'})
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Chỉ có thể gia hạn hợp đồng đang hoạt động'


def test_delete_contract_guards(client, make_contract):
    contract = make_contract()

    response = client.delete(f'/api/contracts/{contract.id}')
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Không thể xóa hợp đồng đang hoạt động'

    client.put(f'/api/contracts/{contract.id}/terminate', json={'reason': 'trả phòng'})
    response = client.delete(f'/api/contracts/{contract.id}')
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Không thể xóa hợp đồng có thanh toán liên quan'


def test_delete_contract_without_payments_soft_deletes(client, make_room, make_tenant):
    contract = Contract(
        contract_number='HD20230001',
        room=make_room(),
        tenant=make_tenant(),
        start_date='2023-01-01',
        end_date='2023-06-30',
        monthly_rent=800000,
        deposit=800000,
        terms='Điều khoản',
        status='expired',
    )
    db.session.add(contract)
    db.session.commit()

    response = client.delete(f'/api/contracts/{contract.id}')

    assert response.status_code == 200
    assert contract.is_active is False
    assert client.get(f'/api/contracts/{contract.id}').status_code == 404


def test_duration_and_derived_status(clock, make_contract):
    contract = make_contract()

    assert contract.duration_in_months == 13
    assert contract.contract_status == 'active'
    clock.set(2024, 12, 15)
    assert contract.contract_status == 'expiring_soon'
    clock.set(2025, 1, 2)
    assert contract.contract_status == 'expired'


def test_expiring_and_expired_queries(clock, make_room, make_contract):
    contract = make_contract(room=make_room('101'))
    make_contract(room=make_room('102'), endDate='2025-12-31')

    clock.set(2024, 12, 10)
    assert contract_service.find_expiring_soon(30) == [contract]
    assert contract_service.find_expired() == []

    clock.set(2025, 1, 2)
    assert contract_service.find_expired() == [contract]
    assert contract_service.expire_overdue_contracts() == 1
    assert contract.status == 'expired'


def test_contract_numbers_are_sequential(make_room, make_contract):
    first = make_contract(room=make_room('101'))
    second = make_contract(room=make_room('102'))

    assert first.contract_number == 'HD20240001'
    assert second.contract_number == 'HD20240002'


def test_create_contract_service_rejects_occupied_room(make_room, make_tenant, make_contract, contract_payload):
    room = make_room()
    make_contract(room=room)

    with pytest.raises(PreconditionFailed):
        contract_service.create_contract(contract_payload(room, make_tenant()))
    assert Contract.query.count() == 1


def test_contract_stats_overview(client, make_room, make_contract):
    make_contract(room=make_room('101'))
    terminated = make_contract(room=make_room('102'))
    contract_service.terminate_contract(terminated, 'trả phòng')

    response = client.get('/api/contracts/stats/overview')

    overview = response.get_json()['data']['overview']
    assert overview['totalContracts'] == 2
    assert overview['activeContracts'] == 1
    assert overview['terminatedContracts'] == 1


def test_tenant_cannot_hold_two_active_contracts(make_room, make_tenant, make_contract, contract_payload):
    tenant = make_tenant()
    make_contract(room=make_room('R101'), tenant=tenant)
    other_room = make_room('R102')

    with pytest.raises(PreconditionFailed) as excinfo:
        contract_service.create_contract(contract_payload(other_room, tenant))

    assert excinfo.value.message == 'Khách thuê đang có hợp đồng hiệu lực khác'
    assert other_room.status == 'available'
    assert Contract.query.count() == 1


def test_terminate_leaves_tenant_current_room_alone(client, make_room, make_tenant, make_contract):
    first_room = make_room('R101')
    second_room = make_room('R102')
    tenant = make_tenant()
    contract = make_contract(room=first_room, tenant=tenant)
    client.put(f'/api/tenants/{tenant.id}/move-in', json={'roomId': second_room.id})

    response = client.put(f'/api/contracts/{contract.id}/terminate', json={'reason': 'đổi phòng'})

    assert response.status_code == 200
    assert first_room.status == 'available'
    assert first_room.tenant_id is None
    assert second_room.status == 'occupied'
    assert second_room.tenant_id == tenant.id
    assert tenant.room_id == second_room.id
    assert tenant.status == 'active'


def test_create_contract_accepts_room_and_tenant_keys(make_room, make_tenant, contract_payload):
    room = make_room()
    tenant = make_tenant()
    data = contract_payload(room, tenant)
    data['room'] = data.pop('roomId')
    data['tenant'] = data.pop('tenantId')

    contract = contract_service.create_contract(data)

    assert contract.room_id == room.id
    assert contract.tenant_id == tenant.id
    assert room.tenant_id == tenant.id
