from decimal import Decimal

import pytest

from models.payment import Payment
from services import payment_service
from services.errors import ValidationError
from utils import qr


def test_build_qr_url_from_config(app):
    url = qr.build_qr_url(Decimal('800000.00'), 'TTTT2024010001 P101 Khach 1')

    assert url == (
        'https://img.vietqr.io/image/bidv-3950630937-print.jpg'
        '?amount=800000&accountName=Pham%20Thi%20Luyen&addInfo=TTTT2024010001%20P101%20Khach%201'
    )


def test_build_qr_url_with_explicit_account(app):
    url = qr.build_qr_url(10000, 'Test', 'vcb', '0123456789', 'Nguyen Van A', 'https://qr.example.com/')

    assert url.startswith('https://qr.example.com/vcb-0123456789-print.jpg?')
    assert 'accountName=Nguyen%20Van%20A' in url


def test_format_and_parse_amount():
    assert qr.format_amount(Decimal('800000.00')) == '800000'
    assert qr.format_amount('1500.50') == '1500.5'
    assert qr.parse_amount('2500') == Decimal('2500')
    for bad in ('0', '-5', 'abc', 'NaN'):
        with pytest.raises(ValidationError):
            qr.parse_amount(bad)


def test_bank_names():
    assert qr.get_bank_name('BIDV') == 'BIDV'
    assert qr.get_bank_name('xyz') == 'Ngân hàng không xác định'


def test_generate_qr(client):
    response = client.post('/api/qr/generate', json={'amount': 1500000, 'roomId': 'R101', 'tenantName': 'Binh'})

    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['description'] == 'Thanh toan phong R101 - Binh'
    assert data['accountName'] == 'Pham Thi Luyen'
    assert data['bankCode'] == 'BIDV'
    assert 'amount=1500000' in data['qrUrl']


def test_generate_qr_requires_fields(client):
    response = client.post('/api/qr/generate', json={'amount': 1000})

    assert response.status_code == 400
    assert response.get_json()['errors'] == ['Số tiền, ID phòng và tên khách thuê là bắt buộc']

    response = client.post('/api/qr/generate', json={'amount': -1000, 'roomId': 1, 'tenantName': 'A'})
    assert response.get_json()['errors'] == ['Số tiền phải là số dương']


def test_qr_for_payment(client, make_room, make_contract):
    contract = make_contract(room=make_room('R101'))
    payment = Payment.query.filter_by(contract_id=contract.id).one()

    response = client.post('/api/qr/payment', json={'paymentId': payment.id})

    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['description'] == f'TT{payment.payment_code} PR101 {contract.tenant.name}'
    assert data['payment']['amount'] == 800000
    assert data['bankInfo']['bankName'] == 'BIDV'

    payment_service.mark_paid(payment)
    response = client.post('/api/qr/payment', json={'paymentId': payment.id})
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Thanh toán đã được thanh toán'


def test_batch_qr_skips_paid_payments(client, make_room, make_contract):
    first = make_contract(room=make_room('101'))
    second = make_contract(room=make_room('102'))
    paid = Payment.query.filter_by(contract_id=first.id).one()
    open_payment = Payment.query.filter_by(contract_id=second.id).one()
    payment_service.mark_paid(paid)

    response = client.post('/api/qr/batch', json={'paymentIds': [paid.id, open_payment.id]})

    data = response.get_json()['data']
    assert data['total'] == 1
    assert data['qrCodes'][0]['paymentId'] == open_payment.id
    assert data['totalAmount'] == 800000

    response = client.post('/api/qr/batch', json={'paymentIds': [paid.id]})
    assert response.status_code == 404


def test_validate_account(client):
    response = client.post('/api/qr/validate', json={'bankCode': 'vcb', 'accountNumber': '12ab', 'accountName': 'A'})

    assert response.status_code == 400
    assert response.get_json()['errors'] == [
        'Số tài khoản phải từ 6-20 chữ số',
        'Tên tài khoản phải có ít nhất 2 ký tự',
    ]

    response = client.post('/api/qr/validate',
                           json={'bankCode': 'vcb', 'accountNumber': '0123456789', 'accountName': 'Nguyen Van A'})
    data = response.get_json()['data']
    assert data['bankName'] == 'Vietcombank'
    assert 'amount=10000' in data['testUrl']


def test_banks_and_config(client):
    banks = client.get('/api/qr/banks').get_json()['data']
    assert len(banks['banks']) == 10
    assert banks['current'] == {'code': 'bidv', 'name': 'BIDV'}

    config = client.get('/api/qr/config').get_json()['data']
    assert config['configured'] is True
    assert config['accountName'] == 'Pham Thi Luyen'
