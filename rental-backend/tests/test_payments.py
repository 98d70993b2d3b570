from datetime import datetime
from io import BytesIO
import warnings

import openpyxl
import pytest
from sqlalchemy.exc import SAWarning

from models.payment import Payment
from services import payment_service
from services.errors import PreconditionFailed, ValidationError


@pytest.fixture
def payment(make_contract):
    contract = make_contract()
    return Payment.query.filter_by(contract_id=contract.id).one()


def test_total_is_recomputed_after_update(client, payment):
    response = client.put(f'/api/payments/{payment.id}', json={
        'electricityUsage': 50,
        'waterUsage': 4,
        'internetAmount': 100000,
        'otherFees': [{'description': 'Sửa khóa', 'amount': 50000}],
        'discount': 20000,
        'discountReason': 'Khách quen',
        'totalAmount': 1,
    })

    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['electricityAmount'] == 150000
    assert data['waterAmount'] == 20000
    assert data['otherFees'] == [{'description': 'Sửa khóa', 'amount': 50000}]
    assert data['totalAmount'] == 800000 + 150000 + 20000 + 100000 + 50000 - 20000


def test_negative_total_is_rejected(client, payment):
    response = client.put(f'/api/payments/{payment.id}', json={'discount': 2000000})

    assert response.status_code == 400
    assert response.get_json()['errors'] == ['Tổng tiền phải lớn hơn hoặc bằng 0']
    assert payment.total_amount == 800000


def test_negative_usage_is_rejected(client, payment):
    response = client.put(f'/api/payments/{payment.id}', json={'electricityUsage': -1})

    assert response.status_code == 400
    assert response.get_json()['errors'] == ['Số điện phải lớn hơn hoặc bằng 0']


def test_pending_payment_past_due_becomes_overdue_on_save(clock, payment):
    clock.set(2024, 1, 8, 12)

    payment_service.update_payment(payment, {'notes': 'Đã nhắc khách'})

    assert payment.status == 'overdue'
    assert payment.days_overdue == 4
    assert payment.payment_status == 'overdue'


def test_days_overdue_is_zero_before_due_date(payment):
    assert payment.days_overdue == 0
    assert payment.payment_status == 'pending'


def test_bulk_create_skips_periods_already_billed(client, make_room, make_contract):
    make_contract(room=make_room('101'))
    make_contract(room=make_room('102'))

    response = client.post('/api/payments/bulk-create', json={'month': 2, 'year': 2024})
    data = response.get_json()['data']
    assert data['created'] == 2
    assert data['errors'] == 0
    assert sorted(item['paymentCode'] for item in data['payments']) == ['TT2024020001', 'TT2024020002']
    assert {item['dueDate'] for item in data['payments']} == {'2024-02-05T00:00:00'}

    make_contract(room=make_room('103'))
    response = client.post('/api/payments/bulk-create', json={'month': 2, 'year': 2024})

    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['created'] == 1
    assert data['errors'] == 2
    assert {item['room'] for item in data['errorDetails']} == {'101', '102'}
    assert {item['message'] for item in data['errorDetails']} == {'Đã có thanh toán cho tháng này'}
    assert Payment.query.filter_by(month=2, year=2024).count() == 3


def test_bulk_create_can_be_limited_to_rooms(make_room, make_contract):
    room = make_room('101')
    make_contract(room=room)
    make_contract(room=make_room('102'))

    result = payment_service.bulk_create(3, 2024, [room.id])

    assert result['created'] == 1
    assert result['payments'][0].room_id == room.id


def test_bulk_create_links_payments_without_session_warnings(make_room, make_contract):
    contract = make_contract(room=make_room('101'))

    with warnings.catch_warnings():
        warnings.filterwarnings('error', message='.*not in session', category=SAWarning)
        result = payment_service.bulk_create(2, 2024)

    assert result['created'] == 1
    assert contract.payments.filter_by(month=2, year=2024).count() == 1


def test_bulk_create_requires_period(app):
    with pytest.raises(ValidationError) as excinfo:
        payment_service.bulk_create(None, 2024)
    assert excinfo.value.message == 'Tháng và năm là bắt buộc'


def test_cancel_appends_reason_and_history(client, payment):
    response = client.put(f'/api/payments/{payment.id}/cancel', json={'reason': 'Khách trả phòng sớm'})

    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['status'] == 'cancelled'
    assert 'Lý do hủy: Khách trả phòng sớm' in data['notes']
    assert data['statusHistory'][-1]['status'] == 'cancelled'
    assert data['statusHistory'][-1]['reason'] == 'Khách trả phòng sớm'


def test_paid_payment_cannot_be_edited_cancelled_or_deleted(client, payment):
    payment_service.mark_paid(payment, 'cash')

    response = client.put(f'/api/payments/{payment.id}/cancel', json={'reason': 'nhầm'})
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Không thể hủy thanh toán đã thanh toán'

    response = client.delete(f'/api/payments/{payment.id}')
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Không thể xóa thanh toán đã thanh toán'

    response = client.put(f'/api/payments/{payment.id}', json={'waterUsage': 3})
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Không thể sửa thanh toán đã thanh toán'


def test_delete_pending_payment_soft_deletes(client, payment):
    response = client.delete(f'/api/payments/{payment.id}')

    assert response.status_code == 200
    assert payment.is_active is False
    assert client.get(f'/api/payments/{payment.id}').status_code == 404


def test_mark_paid_twice_raises(payment):
    payment_service.mark_paid(payment)

    with pytest.raises(PreconditionFailed):
        payment_service.mark_paid(payment)


def test_due_date_is_clamped_to_month_length():
    assert payment_service.compute_due_date(2024, 2, 31) == datetime(2024, 2, 29)
    assert payment_service.compute_due_date(2023, 4, 31) == datetime(2023, 4, 30)
    assert payment_service.compute_due_date(2024, 1, 15) == datetime(2024, 1, 15)


def test_overdue_and_due_soon_queries(client, clock, payment):
    clock.set(2024, 1, 3)
    assert payment_service.find_due_soon(3) == [payment]
    assert payment_service.find_overdue() == []

    clock.set(2024, 1, 6)
    response = client.get('/api/payments/overdue')
    assert [item['id'] for item in response.get_json()['data']] == [payment.id]

    assert payment_service.mark_overdue_payments() == 1
    assert payment.status == 'overdue'
    assert payment.status_history[-1].changed_by == 'System'


def test_list_payments_filters_by_status(client, make_room, make_contract):
    make_contract(room=make_room('101'))
    second = make_contract(room=make_room('102'))
    paid = Payment.query.filter_by(contract_id=second.id).one()
    payment_service.mark_paid(paid)

    response = client.get('/api/payments?status=paid')

    body = response.get_json()
    assert body['pagination']['totalItems'] == 1
    assert body['data'][0]['paymentCode'] == paid.payment_code


def test_export_payments_to_excel(client, payment):
    response = client.get('/api/payments/export?year=2024&month=1')

    assert response.status_code == 200
    assert response.mimetype == 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
    assert 'payments_2024_01.xlsx' in response.headers['Content-Disposition']
    sheet = openpyxl.load_workbook(BytesIO(response.data)).active
    assert sheet.title == 'Thanh toán'
    assert sheet.cell(row=2, column=1).value == payment.payment_code
    assert sheet.cell(row=2, column=10).value == 800000
    assert sheet.cell(row=2, column=11).value == 'Chờ thanh toán'


def test_payment_stats(client, payment):
    payment_service.mark_paid(payment)

    response = client.get('/api/payments/stats/overview')

    overview = response.get_json()['data']['overview']
    assert overview['totalPayments'] == 1
    assert overview['paidPayments'] == 1
    assert overview['totalRevenue'] == 800000
    assert overview['currentMonthRevenue'] == 800000
    assert overview['paymentRate'] == 100
