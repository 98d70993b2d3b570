from decimal import Decimal, InvalidOperation
from urllib.parse import quote, unquote, urlencode
import re

from flask import current_app

from services.errors import ValidationError

ACCOUNT_NUMBER_PATTERN = re.compile(r'^[0-9]{6,20}$')

SUPPORTED_BANKS = [
    {'code': 'vcb', 'name': 'Vietcombank', 'fullName': 'Ngân hàng TMCP Ngoại thương Việt Nam'},
    {'code': 'bidv', 'name': 'BIDV', 'fullName': 'Ngân hàng TMCP Đầu tư và Phát triển Việt Nam'},
    {'code': 'vtb', 'name': 'Vietinbank', 'fullName': 'Ngân hàng TMCP Công thương Việt Nam'},
    {'code': 'agribank', 'name': 'Agribank', 'fullName': 'Ngân hàng Nông nghiệp và Phát triển Nông thôn Việt Nam'},
    {'code': 'acb', 'name': 'ACB', 'fullName': 'Ngân hàng TMCP Á Châu'},
    {'code': 'tcb', 'name': 'Techcombank', 'fullName': 'Ngân hàng TMCP Kỹ thương Việt Nam'},
    {'code': 'mb', 'name': 'MBBank', 'fullName': 'Ngân hàng TMCP Quân đội'},
    {'code': 'vpbank', 'name': 'VPBank', 'fullName': 'Ngân hàng TMCP Việt Nam Thịnh vượng'},
    {'code': 'tpb', 'name': 'TPBank', 'fullName': 'Ngân hàng TMCP Tiên Phong'},
    {'code': 'stb', 'name': 'Sacombank', 'fullName': 'Ngân hàng TMCP Sài Gòn Thương tín'},
]

BANK_NAMES = {bank['code']: bank['name'] for bank in SUPPORTED_BANKS}


def get_bank_name(bank_code):
    return BANK_NAMES.get((bank_code or '').lower(), 'Ngân hàng không xác định')


def format_amount(amount):
    """Số tiền dạng chuỗi, bỏ phần thập phân .00."""
    value = Decimal(str(amount))
    if value == value.to_integral_value():
        return str(value.quantize(Decimal(1)))
    return str(value.normalize())


def parse_amount(amount):
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ValidationError('Số tiền phải là số dương')
    if not value.is_finite() or value <= 0:
        raise ValidationError('Số tiền phải là số dương')
    return value


def qr_settings():
    config = current_app.config
    return {
        'bankCode': config['QR_BANK_CODE'],
        'accountNumber': config['QR_ACCOUNT_NUMBER'],
        'accountName': config['QR_ACCOUNT_NAME'],
        'baseUrl': config['QR_BASE_URL'],
    }


def build_qr_url(amount, add_info, bank_code=None, account_number=None, account_name=None, base_url=None):
    """URL ảnh VietQR: <base>/<bank>-<account>-print.jpg?amount=..&accountName=..&addInfo=.."""
    settings = qr_settings()
    bank_code = bank_code or settings['bankCode']
    account_number = account_number or settings['accountNumber']
    # Tên tài khoản trong cấu hình đã được encode sẵn (%20)
    account_name = unquote(account_name or settings['accountName'])
    base_url = (base_url or settings['baseUrl']).rstrip('/')

    params = urlencode({
        'amount': format_amount(amount),
        'accountName': account_name,
        'addInfo': add_info,
    }, quote_via=quote)
    return f"{base_url}/{bank_code}-{account_number}-print.jpg?{params}"


def bank_info():
    settings = qr_settings()
    return {
        'accountNumber': settings['accountNumber'],
        'accountName': unquote(settings['accountName']),
        'bankCode': settings['bankCode'].upper(),
        'bankName': get_bank_name(settings['bankCode']),
    }


def payment_description(payment):
    room_number = payment.room.number if payment.room else 'N/A'
    tenant_name = payment.tenant.name if payment.tenant else 'N/A'
    return f"TT{payment.payment_code} P{room_number} {tenant_name}"


def validate_account(bank_code, account_number, account_name):
    errors = []
    if not bank_code:
        errors.append('Mã ngân hàng là bắt buộc')
    if not account_number:
        errors.append('Số tài khoản là bắt buộc')
    elif not ACCOUNT_NUMBER_PATTERN.match(str(account_number)):
        errors.append('Số tài khoản phải từ 6-20 chữ số')
    if not account_name:
        errors.append('Tên tài khoản là bắt buộc')
    elif len(account_name) < 2:
        errors.append('Tên tài khoản phải có ít nhất 2 ký tự')
    return errors
