import math

from extensions import db
from models.hooks import (
    require_fields, to_money, check_choice, as_float, config_default,
    PHONE_PATTERN, ID_CARD_PATTERN,
)
from services.errors import ValidationError
from utils import time_utils


class Contract(db.Model):
    __tablename__ = 'contracts'
    __table_args__ = (
        db.Index('idx_contract_room_id', 'room_id'),
        db.Index('idx_contract_tenant_id', 'tenant_id'),
        db.Index('idx_contract_status', 'status'),
        db.Index('idx_contract_start_date', 'start_date'),
        db.Index('idx_contract_end_date', 'end_date'),
    )
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    contract_number = db.Column(db.String(20), unique=True, nullable=False)
    room_id = db.Column(db.Integer, db.ForeignKey('rooms.id', ondelete='RESTRICT'), nullable=False)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id', ondelete='RESTRICT'), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    monthly_rent = db.Column(db.Numeric(14, 2), nullable=False)
    deposit = db.Column(db.Numeric(14, 2), nullable=False)
    electricity_price = db.Column(db.Numeric(14, 2), default=lambda: config_default('DEFAULT_ELECTRICITY_PRICE', 3000), nullable=False)
    water_price = db.Column(db.Numeric(14, 2), default=lambda: config_default('DEFAULT_WATER_PRICE', 5000), nullable=False)
    internet_price = db.Column(db.Numeric(14, 2), default=0, nullable=False)
    parking_price = db.Column(db.Numeric(14, 2), default=0, nullable=False)
    cleaning_price = db.Column(db.Numeric(14, 2), default=0, nullable=False)
    payment_day = db.Column(db.SmallInteger, default=1, nullable=False)
    status = db.Column(db.String(20), default='active', nullable=False)
    terms = db.Column(db.Text, nullable=False)
    rules = db.Column(db.JSON, default=list)
    witnesses = db.Column(db.JSON, default=list)
    documents = db.Column(db.JSON, default=list)
    termination_reason = db.Column(db.String(500))
    termination_date = db.Column(db.DateTime)
    notes = db.Column(db.Text, default='')
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: time_utils.now(), nullable=False)
    updated_at = db.Column(db.DateTime, default=lambda: time_utils.now(), onupdate=lambda: time_utils.now(), nullable=False)

    room = db.relationship('Room', backref=db.backref('contracts', lazy='dynamic'), lazy=True)
    tenant = db.relationship('Tenant', backref=db.backref('contracts', lazy='dynamic'), lazy=True)
    renewal_history = db.relationship(
        'ContractRenewal', back_populates='contract', order_by='ContractRenewal.id',
        cascade='all, delete-orphan', lazy=True
    )

    ALLOWED_STATUSES = ['active', 'expired', 'terminated', 'renewed']
    DOCUMENT_TYPES = ['contract', 'appendix', 'termination', 'renewal']

    @db.validates('start_date', 'end_date')
    def validate_dates(self, key, value):
        return time_utils.to_date(value, 'ngày bắt đầu' if key == 'start_date' else 'ngày kết thúc')

    @db.validates('monthly_rent')
    def validate_monthly_rent(self, key, value):
        return to_money(value, 'Tiền thuê phải lớn hơn 0')

    @db.validates('deposit')
    def validate_deposit(self, key, value):
        return to_money(value, 'Tiền cọc phải lớn hơn hoặc bằng 0')

    @db.validates('electricity_price')
    def validate_electricity_price(self, key, value):
        return to_money(value, 'Giá điện phải lớn hơn hoặc bằng 0')

    @db.validates('water_price')
    def validate_water_price(self, key, value):
        return to_money(value, 'Giá nước phải lớn hơn hoặc bằng 0')

    @db.validates('internet_price')
    def validate_internet_price(self, key, value):
        return to_money(value, 'Giá internet phải lớn hơn hoặc bằng 0')

    @db.validates('parking_price')
    def validate_parking_price(self, key, value):
        return to_money(value, 'Giá gửi xe phải lớn hơn hoặc bằng 0')

    @db.validates('cleaning_price')
    def validate_cleaning_price(self, key, value):
        return to_money(value, 'Giá vệ sinh phải lớn hơn hoặc bằng 0')

    @db.validates('payment_day')
    def validate_payment_day(self, key, value):
        if value is None or value == '':
            return None
        try:
            day = int(value)
        except (TypeError, ValueError):
            raise ValidationError('Ngày thanh toán phải từ 1-31')
        if not 1 <= day <= 31:
            raise ValidationError('Ngày thanh toán phải từ 1-31')
        return day

    @db.validates('status')
    def validate_status(self, key, value):
        return check_choice(value, self.ALLOWED_STATUSES, 'Trạng thái hợp đồng không hợp lệ')

    @db.validates('rules')
    def validate_rules(self, key, value):
        value = value or []
        if not isinstance(value, list):
            raise ValidationError('Nội quy phải là danh sách')
        return [str(rule).strip() for rule in value if str(rule).strip()]

    @db.validates('witnesses')
    def validate_witnesses(self, key, value):
        witnesses = []
        for witness in value or []:
            name = (witness.get('name') or '').strip()
            phone = str(witness.get('phone') or '')
            id_card = str(witness.get('idCard') or '')
            if not name:
                raise ValidationError('Tên người làm chứng là bắt buộc')
            if not PHONE_PATTERN.match(phone):
                raise ValidationError('Số điện thoại người làm chứng không hợp lệ')
            if not ID_CARD_PATTERN.match(id_card):
                raise ValidationError('Số CMND/CCCD người làm chứng không hợp lệ')
            witnesses.append({'name': name, 'phone': phone, 'idCard': id_card})
        return witnesses

    def before_save(self):
        require_fields(self, {
            'contract_number': 'Số hợp đồng là bắt buộc',
            'start_date': 'Ngày bắt đầu là bắt buộc',
            'end_date': 'Ngày kết thúc là bắt buộc',
            'monthly_rent': 'Tiền thuê hàng tháng là bắt buộc',
            'deposit': 'Tiền cọc là bắt buộc',
            'terms': 'Điều khoản hợp đồng là bắt buộc',
        })
        if self.room_id is None and self.room is None:
            raise ValidationError('Phòng là bắt buộc')
        if self.tenant_id is None and self.tenant is None:
            raise ValidationError('Khách thuê là bắt buộc')
        if self.end_date <= self.start_date:
            raise ValidationError('Ngày kết thúc phải sau ngày bắt đầu')
        if self.status == 'active' and self.end_date < time_utils.today():
            self.status = 'expired'

    @property
    def duration_in_months(self):
        if not self.start_date or not self.end_date:
            return 0
        days = abs((self.end_date - self.start_date).days)
        return math.ceil(days / 30)

    @property
    def contract_status(self):
        today = time_utils.today()
        if self.status == 'terminated':
            return 'terminated'
        if self.status == 'expired' or self.end_date < today:
            return 'expired'
        if (self.end_date - today).days <= 30:
            return 'expiring_soon'
        return 'active'

    def to_dict(self, include_relations=True):
        data = {
            'id': self.id,
            'contractNumber': self.contract_number,
            'roomId': self.room_id,
            'tenantId': self.tenant_id,
            'startDate': time_utils.isoformat(self.start_date),
            'endDate': time_utils.isoformat(self.end_date),
            'monthlyRent': as_float(self.monthly_rent),
            'deposit': as_float(self.deposit),
            'electricityPrice': as_float(self.electricity_price),
            'waterPrice': as_float(self.water_price),
            'internetPrice': as_float(self.internet_price),
            'parkingPrice': as_float(self.parking_price),
            'cleaningPrice': as_float(self.cleaning_price),
            'paymentDay': self.payment_day,
            'status': self.status,
            'contractStatus': self.contract_status,
            'durationInMonths': self.duration_in_months,
            'terms': self.terms,
            'rules': list(self.rules or []),
            'witnesses': list(self.witnesses or []),
            'documents': list(self.documents or []),
            'renewalHistory': [renewal.to_dict() for renewal in self.renewal_history],
            'terminationReason': self.termination_reason,
            'terminationDate': time_utils.isoformat(self.termination_date),
            'notes': self.notes or '',
            'isActive': self.is_active,
            'createdAt': time_utils.isoformat(self.created_at),
            'updatedAt': time_utils.isoformat(self.updated_at),
        }
        if include_relations:
            data['room'] = self.room.to_brief() if self.room else None
            data['tenant'] = self.tenant.to_brief() if self.tenant else None
        return data


class ContractRenewal(db.Model):
    __tablename__ = 'contract_renewals'
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    contract_id = db.Column(db.Integer, db.ForeignKey('contracts.id', ondelete='CASCADE'), nullable=False)
    old_end_date = db.Column(db.Date, nullable=False)
    new_end_date = db.Column(db.Date, nullable=False)
    renewal_date = db.Column(db.DateTime, default=lambda: time_utils.now(), nullable=False)
    reason = db.Column(db.String(500), default='Gia hạn hợp đồng')

    contract = db.relationship('Contract', back_populates='renewal_history')

    def to_dict(self):
        return {
            'oldEndDate': time_utils.isoformat(self.old_end_date),
            'newEndDate': time_utils.isoformat(self.new_end_date),
            'renewalDate': time_utils.isoformat(self.renewal_date),
            'reason': self.reason,
        }
