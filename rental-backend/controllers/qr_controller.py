from flask import Blueprint
from models.payment import Payment
from services.errors import NotFound, PreconditionFailed, ValidationError
from services.payment_service import get_payment_or_404
from utils import qr
from utils.responses import success, error, request_data
from urllib.parse import unquote
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

qr_bp = Blueprint('qr', __name__)


def payment_qr(payment):
    description = qr.payment_description(payment)
    return {
        'paymentId': payment.id,
        'paymentCode': payment.payment_code,
        'qrUrl': qr.build_qr_url(payment.total_amount, description),
        'amount': float(payment.total_amount),
        'dueDate': payment.due_date.isoformat(),
        'room': payment.room.to_brief() if payment.room else None,
        'tenant': payment.tenant.to_brief() if payment.tenant else None,
        'description': description,
    }


# Tạo QR thanh toán theo số tiền nhập tay
@qr_bp.route('/qr/generate', methods=['POST'])
def generate_qr():
    data = request_data()
    amount = data.get('amount')
    room_id = data.get('roomId')
    tenant_name = data.get('tenantName')
    if not amount or not room_id or not tenant_name:
        raise ValidationError('Số tiền, ID phòng và tên khách thuê là bắt buộc')

    value = qr.parse_amount(amount)
    description = data.get('description') or f"Thanh toan phong {room_id} - {tenant_name}"
    qr_url = qr.build_qr_url(value, description)
    info = qr.bank_info()

    logger.info(f"Generated QR - room: {room_id}, tenant: {tenant_name}, amount: {value}")
    return success({
        'qrUrl': qr_url,
        'amount': float(value),
        'accountNumber': info['accountNumber'],
        'accountName': info['accountName'],
        'bankCode': info['bankCode'],
        'description': description,
        'roomId': room_id,
        'tenantName': tenant_name,
    }, 'Tạo QR code thanh toán thành công')


# Tạo QR cho một thanh toán đã có
@qr_bp.route('/qr/payment', methods=['POST'])
def payment_qr_code():
    payment_id = request_data().get('paymentId')
    if not payment_id:
        raise ValidationError('ID thanh toán là bắt buộc')
    payment = get_payment_or_404(payment_id)
    if payment.status == 'paid':
        raise PreconditionFailed('Thanh toán đã được thanh toán')

    item = payment_qr(payment)
    logger.info(f"Generated QR for payment {payment.payment_code} - amount: {item['amount']}")
    return success({
        'qrUrl': item['qrUrl'],
        'payment': {
            'id': payment.id,
            'code': payment.payment_code,
            'amount': item['amount'],
            'dueDate': item['dueDate'],
            'room': item['room'],
            'tenant': item['tenant'],
        },
        'bankInfo': qr.bank_info(),
        'description': item['description'],
    }, 'Tạo QR code cho thanh toán thành công')


@qr_bp.route('/qr/batch', methods=['POST'])
def batch_qr_codes():
    payment_ids = request_data().get('paymentIds')
    if not isinstance(payment_ids, list) or not payment_ids:
        raise ValidationError('Danh sách ID thanh toán không hợp lệ')
    try:
        payments = Payment.query.filter(
            Payment.id.in_(payment_ids),
            Payment.is_active.is_(True),
            Payment.status != 'paid'
        ).order_by(Payment.id.asc()).all()
    except SQLAlchemyError as e:
        logger.error(f"Database error fetching payments for QR batch: {str(e)}")
        return error('Lỗi khi tạo QR hàng loạt', 500, error=str(e))
    if not payments:
        raise NotFound('Không tìm thấy thanh toán hợp lệ')

    qr_codes = [payment_qr(payment) for payment in payments]
    logger.info(f"Generated QR batch for {len(payments)} payments")
    return success({
        'qrCodes': qr_codes,
        'bankInfo': qr.bank_info(),
        'total': len(payments),
        'totalAmount': float(sum(payment.total_amount for payment in payments)),
    }, f'Tạo QR code hàng loạt thành công cho {len(payments)} thanh toán')


@qr_bp.route('/qr/banks', methods=['GET'])
def get_banks():
    bank_code = current_app.config['QR_BANK_CODE']
    return success({
        'banks': qr.SUPPORTED_BANKS,
        'current': {'code': bank_code, 'name': qr.get_bank_name(bank_code)},
        'note': 'Chỉ hiển thị một số ngân hàng phổ biến. VietQR hỗ trợ hầu hết các ngân hàng tại Việt Nam.',
    })


@qr_bp.route('/qr/config', methods=['GET'])
def get_qr_config():
    settings = qr.qr_settings()
    return success({
        'bankCode': settings['bankCode'],
        'bankName': qr.get_bank_name(settings['bankCode']),
        'accountNumber': settings['accountNumber'],
        'accountName': unquote(settings['accountName'] or ''),
        'baseUrl': settings['baseUrl'],
        'configured': bool(settings['bankCode'] and settings['accountNumber'] and settings['accountName']),
    })


@qr_bp.route('/qr/validate', methods=['POST'])
def validate_qr():
    data = request_data()
    bank_code = data.get('bankCode')
    account_number = data.get('accountNumber')
    account_name = data.get('accountName')

    errors = qr.validate_account(bank_code, account_number, account_name)
    if errors:
        return error('Thông tin không hợp lệ', 400, errors=errors)

    return success({
        'bankCode': bank_code,
        'bankName': qr.get_bank_name(bank_code),
        'accountNumber': account_number,
        'accountName': account_name,
        'testUrl': qr.build_qr_url(10000, 'Test QR Code', bank_code, account_number, account_name),
    }, 'Thông tin QR hợp lệ')
