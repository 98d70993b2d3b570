from decimal import Decimal

from extensions import db
from models.hooks import require_fields, to_money, to_float, check_choice, as_float, config_default
from services.errors import ValidationError
from utils import time_utils

ZERO = Decimal('0')


def _money(value):
    return Decimal(str(value)) if value is not None else ZERO


class Payment(db.Model):
    __tablename__ = 'payments'
    __table_args__ = (
        db.Index('idx_payment_room_id', 'room_id'),
        db.Index('idx_payment_tenant_id', 'tenant_id'),
        db.Index('idx_payment_contract_id', 'contract_id'),
        db.Index('idx_payment_status', 'status'),
        db.Index('idx_payment_month_year', 'month', 'year'),
        db.Index('idx_payment_due_date', 'due_date'),
        db.Index('idx_payment_paid_date', 'paid_date'),
    )
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    payment_code = db.Column(db.String(20), unique=True, nullable=False)
    room_id = db.Column(db.Integer, db.ForeignKey('rooms.id', ondelete='RESTRICT'), nullable=False)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id', ondelete='RESTRICT'), nullable=False)
    contract_id = db.Column(db.Integer, db.ForeignKey('contracts.id', ondelete='RESTRICT'), nullable=False)
    month = db.Column(db.SmallInteger, nullable=False)
    year = db.Column(db.SmallInteger, nullable=False)
    due_date = db.Column(db.DateTime, nullable=False)
    paid_date = db.Column(db.DateTime)
    rent_amount = db.Column(db.Numeric(14, 2), nullable=False)
    electricity_usage = db.Column(db.Float, default=0, nullable=False)
    electricity_price = db.Column(db.Numeric(14, 2), default=3000, nullable=False)
    electricity_amount = db.Column(db.Numeric(14, 2), default=0, nullable=False)
    water_usage = db.Column(db.Float, default=0, nullable=False)
    water_price = db.Column(db.Numeric(14, 2), default=5000, nullable=False)
    water_amount = db.Column(db.Numeric(14, 2), default=0, nullable=False)
    internet_amount = db.Column(db.Numeric(14, 2), default=0, nullable=False)
    parking_amount = db.Column(db.Numeric(14, 2), default=0, nullable=False)
    cleaning_amount = db.Column(db.Numeric(14, 2), default=0, nullable=False)
    discount = db.Column(db.Numeric(14, 2), default=0, nullable=False)
    discount_reason = db.Column(db.String(255))
    total_amount = db.Column(db.Numeric(14, 2), default=0, nullable=False)
    status = db.Column(db.String(20), default='pending', nullable=False)
    payment_method = db.Column(db.String(20), default='cash', nullable=False)
    # Thông tin chuyển khoản
    bank_name = db.Column(db.String(100))
    account_number = db.Column(db.String(50))
    transfer_code = db.Column(db.String(100))
    transfer_date = db.Column(db.DateTime)
    notes = db.Column(db.Text, default='')
    collected_by = db.Column(db.String(100), default='Admin')
    receipts = db.Column(db.JSON, default=list)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: time_utils.now(), nullable=False)
    updated_at = db.Column(db.DateTime, default=lambda: time_utils.now(), onupdate=lambda: time_utils.now(), nullable=False)

    room = db.relationship('Room', backref=db.backref('payments', lazy='dynamic'), lazy=True)
    tenant = db.relationship('Tenant', backref=db.backref('payments', lazy='dynamic'), lazy=True)
    contract = db.relationship('Contract', backref=db.backref('payments', lazy='dynamic'), lazy=True)
    other_fees = db.relationship(
        'PaymentFee', back_populates='payment', order_by='PaymentFee.id',
        cascade='all, delete-orphan', lazy=True
    )
    status_history = db.relationship(
        'PaymentStatusHistory', back_populates='payment', order_by='PaymentStatusHistory.id',
        cascade='all, delete-orphan', lazy=True
    )

    ALLOWED_STATUSES = ['pending', 'paid', 'overdue', 'cancelled']
    PAYMENT_METHODS = ['cash', 'bank_transfer', 'qr_code', 'other']
    MONEY_MESSAGES = {
        'rent_amount': 'Tiền thuê phòng phải lớn hơn hoặc bằng 0',
        'electricity_price': 'Giá điện phải lớn hơn hoặc bằng 0',
        'water_price': 'Giá nước phải lớn hơn hoặc bằng 0',
        'internet_amount': 'Tiền internet phải lớn hơn hoặc bằng 0',
        'parking_amount': 'Tiền gửi xe phải lớn hơn hoặc bằng 0',
        'cleaning_amount': 'Tiền vệ sinh phải lớn hơn hoặc bằng 0',
        'discount': 'Giảm giá phải lớn hơn hoặc bằng 0',
    }

    @db.validates('rent_amount', 'electricity_price', 'water_price', 'internet_amount',
                  'parking_amount', 'cleaning_amount', 'discount')
    def validate_money(self, key, value):
        return to_money(value, self.MONEY_MESSAGES[key])

    @db.validates('electricity_usage')
    def validate_electricity_usage(self, key, value):
        return to_float(value, 'Số điện phải lớn hơn hoặc bằng 0')

    @db.validates('water_usage')
    def validate_water_usage(self, key, value):
        return to_float(value, 'Số nước phải lớn hơn hoặc bằng 0')

    @db.validates('month')
    def validate_month(self, key, value):
        try:
            month = int(value)
        except (TypeError, ValueError):
            raise ValidationError('Tháng phải từ 1-12')
        if not 1 <= month <= 12:
            raise ValidationError('Tháng phải từ 1-12')
        return month

    @db.validates('year')
    def validate_year(self, key, value):
        try:
            year = int(value)
        except (TypeError, ValueError):
            raise ValidationError('Năm phải từ 2020 trở lên')
        if year < 2020:
            raise ValidationError('Năm phải từ 2020 trở lên')
        return year

    @db.validates('due_date', 'paid_date', 'transfer_date')
    def validate_datetimes(self, key, value):
        return time_utils.to_datetime(value, key)

    @db.validates('status')
    def validate_status(self, key, value):
        return check_choice(value, self.ALLOWED_STATUSES, 'Trạng thái thanh toán không hợp lệ')

    @db.validates('payment_method')
    def validate_payment_method(self, key, value):
        return check_choice(value, self.PAYMENT_METHODS, 'Phương thức thanh toán không hợp lệ')

    def recalculate(self):
        """Tính lại tiền điện, nước và tổng tiền."""
        if self.electricity_price is None:
            self.electricity_price = config_default('DEFAULT_ELECTRICITY_PRICE', 3000)
        if self.water_price is None:
            self.water_price = config_default('DEFAULT_WATER_PRICE', 5000)
        self.electricity_amount = _money(self.electricity_usage or 0) * _money(self.electricity_price)
        self.water_amount = _money(self.water_usage or 0) * _money(self.water_price)
        other_fees_total = sum((_money(fee.amount) for fee in self.other_fees), ZERO)
        total = (
            _money(self.rent_amount)
            + _money(self.electricity_amount)
            + _money(self.water_amount)
            + _money(self.internet_amount)
            + _money(self.parking_amount)
            + _money(self.cleaning_amount)
            + other_fees_total
            - _money(self.discount)
        )
        if total < 0:
            raise ValidationError('Tổng tiền phải lớn hơn hoặc bằng 0')
        self.total_amount = total
        return total

    def before_save(self):
        require_fields(self, {
            'payment_code': 'Mã thanh toán là bắt buộc',
            'month': 'Tháng là bắt buộc',
            'year': 'Năm là bắt buộc',
            'due_date': 'Ngày hạn thanh toán là bắt buộc',
            'rent_amount': 'Tiền thuê phòng là bắt buộc',
        })
        if self.room_id is None and self.room is None:
            raise ValidationError('Phòng là bắt buộc')
        if self.tenant_id is None and self.tenant is None:
            raise ValidationError('Khách thuê là bắt buộc')
        if self.contract_id is None and self.contract is None:
            raise ValidationError('Hợp đồng là bắt buộc')
        self.recalculate()
        if (self.status or 'pending') == 'pending' and self.due_date < time_utils.now():
            self.status = 'overdue'

    def add_history(self, status, reason=None, changed_by='Admin'):
        self.status_history.append(PaymentStatusHistory(status=status, reason=reason, changed_by=changed_by))

    def set_other_fees(self, fees):
        self.other_fees = [PaymentFee(description=fee.get('description'), amount=fee.get('amount')) for fee in fees or []]

    @property
    def payment_status(self):
        if self.status == 'paid':
            return 'paid'
        if self.status == 'cancelled':
            return 'cancelled'
        if self.due_date < time_utils.now():
            return 'overdue'
        return 'pending'

    @property
    def days_overdue(self):
        if self.status in ('paid', 'cancelled'):
            return 0
        now = time_utils.now()
        if self.due_date >= now:
            return 0
        return time_utils.days_between_ceil(now, self.due_date)

    def to_dict(self, include_relations=True):
        data = {
            'id': self.id,
            'paymentCode': self.payment_code,
            'roomId': self.room_id,
            'tenantId': self.tenant_id,
            'contractId': self.contract_id,
            'month': self.month,
            'year': self.year,
            'dueDate': time_utils.isoformat(self.due_date),
            'paidDate': time_utils.isoformat(self.paid_date),
            'rentAmount': as_float(self.rent_amount),
            'electricityUsage': self.electricity_usage or 0,
            'electricityPrice': as_float(self.electricity_price),
            'electricityAmount': as_float(self.electricity_amount),
            'waterUsage': self.water_usage or 0,
            'waterPrice': as_float(self.water_price),
            'waterAmount': as_float(self.water_amount),
            'internetAmount': as_float(self.internet_amount),
            'parkingAmount': as_float(self.parking_amount),
            'cleaningAmount': as_float(self.cleaning_amount),
            'otherFees': [fee.to_dict() for fee in self.other_fees],
            'discount': as_float(self.discount),
            'discountReason': self.discount_reason,
            'totalAmount': as_float(self.total_amount),
            'status': self.status,
            'paymentStatus': self.payment_status,
            'daysOverdue': self.days_overdue,
            'paymentMethod': self.payment_method,
            'bankTransfer': {
                'bankName': self.bank_name,
                'accountNumber': self.account_number,
                'transferCode': self.transfer_code,
                'transferDate': time_utils.isoformat(self.transfer_date),
            },
            'notes': self.notes or '',
            'collectedBy': self.collected_by,
            'receipts': list(self.receipts or []),
            'statusHistory': [entry.to_dict() for entry in self.status_history],
            'isActive': self.is_active,
            'createdAt': time_utils.isoformat(self.created_at),
            'updatedAt': time_utils.isoformat(self.updated_at),
        }
        if include_relations:
            data['room'] = self.room.to_brief() if self.room else None
            data['tenant'] = self.tenant.to_brief() if self.tenant else None
            data['contract'] = {
                'id': self.contract.id,
                'contractNumber': self.contract.contract_number,
            } if self.contract else None
        return data


class PaymentFee(db.Model):
    __tablename__ = 'payment_fees'
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    payment_id = db.Column(db.Integer, db.ForeignKey('payments.id', ondelete='CASCADE'), nullable=False)
    description = db.Column(db.String(255), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False)

    payment = db.relationship('Payment', back_populates='other_fees')

    @db.validates('description')
    def validate_description(self, key, value):
        value = (value or '').strip()
        if not value:
            raise ValidationError('Mô tả phí là bắt buộc')
        return value

    @db.validates('amount')
    def validate_amount(self, key, value):
        amount = to_money(value, 'Số tiền phải lớn hơn hoặc bằng 0')
        if amount is None:
            raise ValidationError('Số tiền phải lớn hơn hoặc bằng 0')
        return amount

    def to_dict(self):
        return {'description': self.description, 'amount': as_float(self.amount)}


class PaymentStatusHistory(db.Model):
    __tablename__ = 'payment_status_history'
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    payment_id = db.Column(db.Integer, db.ForeignKey('payments.id', ondelete='CASCADE'), nullable=False)
    status = db.Column(db.String(20), nullable=False)
    changed_at = db.Column(db.DateTime, default=lambda: time_utils.now(), nullable=False)
    changed_by = db.Column(db.String(100), default='Admin')
    reason = db.Column(db.String(500))

    payment = db.relationship('Payment', back_populates='status_history')

    def to_dict(self):
        return {
            'status': self.status,
            'changedAt': time_utils.isoformat(self.changed_at),
            'changedBy': self.changed_by,
            'reason': self.reason,
        }
