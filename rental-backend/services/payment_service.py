"""Tính tiền và trạng thái thanh toán hàng tháng."""
import logging
from collections import Counter
from datetime import datetime, timedelta
from decimal import Decimal

from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models.contract import Contract
from models.payment import Payment
from models.room import Room
from models.tenant import Tenant
from services import sequence
from services.errors import NotFound, PreconditionFailed, ServiceError, ValidationError
from utils import time_utils

logger = logging.getLogger(__name__)

PAYMENT_FIELDS = {
    'month': 'month',
    'year': 'year',
    'dueDate': 'due_date',
    'rentAmount': 'rent_amount',
    'electricityUsage': 'electricity_usage',
    'electricityPrice': 'electricity_price',
    'waterUsage': 'water_usage',
    'waterPrice': 'water_price',
    'internetAmount': 'internet_amount',
    'parkingAmount': 'parking_amount',
    'cleaningAmount': 'cleaning_amount',
    'discount': 'discount',
    'discountReason': 'discount_reason',
    'paymentMethod': 'payment_method',
    'notes': 'notes',
    'collectedBy': 'collected_by',
}

BANK_TRANSFER_FIELDS = {
    'bankName': 'bank_name',
    'accountNumber': 'account_number',
    'transferCode': 'transfer_code',
    'transferDate': 'transfer_date',
}


def compute_due_date(year, month, payment_day):
    """Ngày hạn của kỳ (year, month); ngày vượt quá số ngày trong tháng bị kẹp về cuối tháng."""
    return datetime(int(year), int(month), 1) + relativedelta(day=int(payment_day or 1))


def get_payment_or_404(payment_id, lock=False):
    query = Payment.query.filter_by(id=payment_id, is_active=True)
    if lock:
        query = query.with_for_update()
    payment = query.first()
    if not payment:
        raise NotFound('Không tìm thấy thanh toán')
    return payment


def _ref(data, name):
    return data.get(f'{name}Id', data.get(name))


def _apply_fields(payment, data):
    for key, column in PAYMENT_FIELDS.items():
        if key in data:
            setattr(payment, column, data[key])
    bank_transfer = data.get('bankTransfer')
    if isinstance(bank_transfer, dict):
        for key, column in BANK_TRANSFER_FIELDS.items():
            if key in bank_transfer:
                setattr(payment, column, bank_transfer[key])
    if 'otherFees' in data:
        payment.set_other_fees(data['otherFees'])


def build_payment_for_contract(contract, month, year):
    """Tạo (chưa commit) thanh toán số đo 0 theo điều khoản giá của hợp đồng."""
    payment = Payment(
        payment_code=sequence.next_payment_code(month),
        month=month,
        year=year,
        due_date=compute_due_date(year, month, contract.payment_day),
        rent_amount=contract.monthly_rent,
        electricity_usage=0,
        electricity_price=contract.electricity_price,
        water_usage=0,
        water_price=contract.water_price,
        internet_amount=contract.internet_price or 0,
        parking_amount=contract.parking_price or 0,
        cleaning_amount=contract.cleaning_price or 0,
        discount=0,
        status='pending',
        payment_method='cash',
        notes='',
        collected_by='Admin',
        receipts=[],
    )
    db.session.add(payment)
    payment.contract = contract
    payment.room = contract.room
    payment.tenant = contract.tenant
    payment.recalculate()
    return payment


def create_payment(data, receipts=None):
    try:
        room = Room.query.filter_by(id=_ref(data, 'room'), is_active=True).first()
        tenant = Tenant.query.filter_by(id=_ref(data, 'tenant'), is_active=True).first()
        contract = Contract.query.filter_by(id=_ref(data, 'contract'), is_active=True).first()
        if not room or not tenant or not contract:
            raise PreconditionFailed('Phòng, khách thuê hoặc hợp đồng không tồn tại')
        if not data.get('month') or not data.get('year'):
            raise ValidationError('Tháng và năm là bắt buộc')

        payment = Payment(
            rent_amount=contract.monthly_rent,
            electricity_usage=0,
            electricity_price=contract.electricity_price,
            water_usage=0,
            water_price=contract.water_price,
            internet_amount=contract.internet_price or 0,
            parking_amount=contract.parking_price or 0,
            cleaning_amount=contract.cleaning_price or 0,
            discount=0,
            status='pending',
            payment_method='cash',
            notes='',
            collected_by='Admin',
            receipts=list(receipts or []),
        )
        _apply_fields(payment, data)
        if payment.due_date is None:
            payment.due_date = compute_due_date(payment.year, payment.month, contract.payment_day)
        payment.payment_code = sequence.next_payment_code(payment.month)
        db.session.add(payment)
        payment.room = room
        payment.tenant = tenant
        payment.contract = contract
        payment.recalculate()
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info(f"Created payment {payment.payment_code}")
    return payment


def update_payment(payment, data, receipts=None):
    if payment.status == 'paid':
        raise PreconditionFailed('Không thể sửa thanh toán đã thanh toán')
    try:
        _apply_fields(payment, data)
        if receipts:
            payment.receipts = list(payment.receipts or []) + list(receipts)
        payment.recalculate()
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info(f"Updated payment {payment.payment_code}")
    return payment


def mark_paid(payment, method='cash', notes=''):
    if payment.status == 'paid':
        raise PreconditionFailed('Thanh toán đã được thanh toán')
    try:
        payment.status = 'paid'
        payment.paid_date = time_utils.now()
        payment.payment_method = method or 'cash'
        if notes:
            payment.notes = notes
        payment.add_history('paid', 'Thanh toán thành công')
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info(f"Payment {payment.payment_code} marked as paid ({payment.payment_method})")
    return payment


def cancel_payment(payment, reason=None):
    if payment.status == 'paid':
        raise PreconditionFailed('Không thể hủy thanh toán đã thanh toán')
    try:
        payment.status = 'cancelled'
        if reason:
            payment.notes = (payment.notes or '') + f'\nLý do hủy: {reason}'
        payment.add_history('cancelled', reason or 'Hủy thanh toán')
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info(f"Cancelled payment {payment.payment_code}")
    return payment


def delete_payment(payment):
    if payment.status == 'paid':
        raise PreconditionFailed('Không thể xóa thanh toán đã thanh toán')
    try:
        payment.is_active = False
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info(f"Soft deleted payment {payment.payment_code}")


def remove_receipt(payment, index):
    receipts = list(payment.receipts or [])
    if index < 0 or index >= len(receipts):
        raise ValidationError('Index hóa đơn không hợp lệ')
    removed = receipts.pop(index)
    try:
        payment.receipts = receipts
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info(f"Removed receipt from payment {payment.payment_code}")
    return removed


def bulk_create(month, year, room_ids=None):
    """Tạo thanh toán kỳ (month, year) cho mọi hợp đồng active.

    Mỗi hợp đồng chạy trong một savepoint riêng: hợp đồng lỗi được ghi vào
    errorDetails còn các hợp đồng khác vẫn được tạo.
    """
    if not month or not year:
        raise ValidationError('Tháng và năm là bắt buộc')
    month, year = int(month), int(year)

    query = Contract.query.filter(Contract.status == 'active', Contract.is_active.is_(True))
    if room_ids:
        query = query.filter(Contract.room_id.in_(room_ids))
    contracts = query.order_by(Contract.id.asc()).all()

    created = []
    errors = []
    for contract in contracts:
        existing = Payment.query.filter_by(contract_id=contract.id, month=month, year=year, is_active=True).first()
        if existing:
            errors.append({
                'contractNumber': contract.contract_number,
                'room': contract.room.number if contract.room else None,
                'message': 'Đã có thanh toán cho tháng này',
            })
            continue
        try:
            with db.session.begin_nested():
                payment = build_payment_for_contract(contract, month, year)
                db.session.flush()
            created.append(payment)
        except (ServiceError, SQLAlchemyError) as e:
            errors.append({
                'contractNumber': contract.contract_number,
                'room': contract.room.number if contract.room else None,
                'message': getattr(e, 'message', None) or str(e),
            })
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info(f"Bulk payment creation {month:02d}/{year} - created: {len(created)}, errors: {len(errors)}")
    return {
        'created': len(created),
        'errors': len(errors),
        'payments': created,
        'errorDetails': errors,
    }


def find_overdue():
    return Payment.query.filter(
        Payment.status == 'pending',
        Payment.due_date < time_utils.now(),
        Payment.is_active.is_(True)
    ).order_by(Payment.due_date.asc()).all()


def find_due_soon(days=3):
    limit_date = time_utils.now() + timedelta(days=days)
    return Payment.query.filter(
        Payment.status == 'pending',
        Payment.due_date <= limit_date,
        Payment.is_active.is_(True)
    ).order_by(Payment.due_date.asc()).all()


def mark_overdue_payments():
    """Chuyển các thanh toán pending đã quá hạn sang overdue."""
    try:
        payments = find_overdue()
        for payment in payments:
            payment.status = 'overdue'
            payment.add_history('overdue', 'Quá hạn thanh toán', changed_by='System')
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return len(payments)


def payment_stats():
    payments = Payment.query.filter_by(is_active=True).all()
    statuses = Counter(payment.status for payment in payments)
    paid = [payment for payment in payments if payment.status == 'paid']
    total_revenue = sum((payment.total_amount for payment in paid), Decimal('0'))

    now = time_utils.now()
    current_month_revenue = sum(
        (payment.total_amount for payment in paid if payment.month == now.month and payment.year == now.year),
        Decimal('0')
    )

    monthly = {}
    for payment in payments:
        key = (payment.year, payment.month)
        entry = monthly.setdefault(key, {
            'year': key[0], 'month': key[1], 'total': 0, 'paid': 0, 'revenue': 0.0
        })
        entry['total'] += 1
        if payment.status == 'paid':
            entry['paid'] += 1
            entry['revenue'] += float(payment.total_amount)
    monthly_stats = [monthly[key] for key in sorted(monthly, reverse=True)[:12]]

    by_method = {}
    for payment in paid:
        entry = by_method.setdefault(payment.payment_method, {'method': payment.payment_method, 'count': 0, 'total': 0.0})
        entry['count'] += 1
        entry['total'] += float(payment.total_amount)

    payment_rate = round(len(paid) / len(payments) * 100, 1) if payments else 0

    return {
        'overview': {
            'totalPayments': len(payments),
            'paidPayments': statuses['paid'],
            'pendingPayments': statuses['pending'],
            'overduePayments': statuses['overdue'],
            'cancelledPayments': statuses['cancelled'],
            'totalRevenue': float(total_revenue),
            'currentMonthRevenue': float(current_month_revenue),
            'paymentRate': payment_rate,
        },
        'monthlyStats': monthly_stats,
        'paymentMethodStats': list(by_method.values()),
    }
