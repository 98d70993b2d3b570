from extensions import db
from models.hooks import (
    require_fields, to_money, check_choice, as_float,
    PHONE_PATTERN, ID_CARD_PATTERN, EMAIL_PATTERN,
)
from services.errors import ValidationError
from utils import time_utils


class Tenant(db.Model):
    __tablename__ = 'tenants'
    __table_args__ = (
        db.Index('idx_tenant_status', 'status'),
        db.Index('idx_tenant_room_id', 'room_id'),
    )
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(11), unique=True, nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    id_card = db.Column(db.String(12), unique=True, nullable=False)
    date_of_birth = db.Column(db.Date, nullable=False)
    gender = db.Column(db.String(10), nullable=False)
    # Địa chỉ thường trú
    street = db.Column(db.String(255), nullable=False)
    ward = db.Column(db.String(100), nullable=False)
    district = db.Column(db.String(100), nullable=False)
    city = db.Column(db.String(100), nullable=False)
    # Liên hệ khẩn cấp
    emergency_name = db.Column(db.String(100), nullable=False)
    emergency_phone = db.Column(db.String(11), nullable=False)
    emergency_relationship = db.Column(db.String(50), nullable=False)
    occupation = db.Column(db.String(100), nullable=False)
    workplace = db.Column(db.String(255))
    room_id = db.Column(db.Integer, db.ForeignKey('rooms.id', ondelete='SET NULL'))
    move_in_date = db.Column(db.Date)
    move_out_date = db.Column(db.Date)
    deposit = db.Column(db.Numeric(14, 2), default=0, nullable=False)
    status = db.Column(db.String(20), default='active', nullable=False)
    notes = db.Column(db.Text, default='')
    documents = db.Column(db.JSON, default=list)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: time_utils.now(), nullable=False)
    updated_at = db.Column(db.DateTime, default=lambda: time_utils.now(), onupdate=lambda: time_utils.now(), nullable=False)

    room = db.relationship('Room', foreign_keys=[room_id], lazy=True)

    ALLOWED_STATUSES = ['active', 'inactive', 'moved_out']
    ALLOWED_GENDERS = ['male', 'female', 'other']
    DOCUMENT_TYPES = ['id_card', 'contract', 'photo', 'other']

    @db.validates('name')
    def validate_name(self, key, value):
        value = value.strip() if isinstance(value, str) else value
        if value and len(value) > 100:
            raise ValidationError('Tên không được vượt quá 100 ký tự')
        return value

    @db.validates('phone')
    def validate_phone(self, key, value):
        if value is not None and not PHONE_PATTERN.match(str(value)):
            raise ValidationError('Số điện thoại không hợp lệ')
        return value

    @db.validates('email')
    def validate_email(self, key, value):
        if value is None:
            return value
        value = value.strip().lower()
        if not EMAIL_PATTERN.match(value):
            raise ValidationError('Email không hợp lệ')
        return value

    @db.validates('id_card')
    def validate_id_card(self, key, value):
        if value is not None and not ID_CARD_PATTERN.match(str(value)):
            raise ValidationError('Số CMND/CCCD không hợp lệ')
        return value

    @db.validates('date_of_birth')
    def validate_date_of_birth(self, key, value):
        value = time_utils.to_date(value, 'ngày sinh')
        if value is not None and value >= time_utils.today():
            raise ValidationError('Ngày sinh phải nhỏ hơn ngày hiện tại')
        return value

    @db.validates('emergency_phone')
    def validate_emergency_phone(self, key, value):
        if value is not None and not PHONE_PATTERN.match(str(value)):
            raise ValidationError('Số điện thoại liên hệ khẩn cấp không hợp lệ')
        return value

    @db.validates('gender')
    def validate_gender(self, key, value):
        return check_choice(value, self.ALLOWED_GENDERS, 'Giới tính không hợp lệ')

    @db.validates('status')
    def validate_status(self, key, value):
        return check_choice(value, self.ALLOWED_STATUSES, 'Trạng thái khách thuê không hợp lệ')

    @db.validates('deposit')
    def validate_deposit(self, key, value):
        return to_money(value, 'Tiền cọc phải lớn hơn hoặc bằng 0')

    @db.validates('move_in_date', 'move_out_date')
    def validate_move_dates(self, key, value):
        return time_utils.to_date(value, key)

    def before_save(self):
        require_fields(self, {
            'name': 'Tên khách thuê là bắt buộc',
            'phone': 'Số điện thoại là bắt buộc',
            'email': 'Email là bắt buộc',
            'id_card': 'Số CMND/CCCD là bắt buộc',
            'date_of_birth': 'Ngày sinh là bắt buộc',
            'gender': 'Giới tính là bắt buộc',
            'street': 'Địa chỉ là bắt buộc',
            'ward': 'Phường/Xã là bắt buộc',
            'district': 'Quận/Huyện là bắt buộc',
            'city': 'Tỉnh/Thành phố là bắt buộc',
            'emergency_name': 'Tên người liên hệ khẩn cấp là bắt buộc',
            'emergency_phone': 'Số điện thoại liên hệ khẩn cấp là bắt buộc',
            'emergency_relationship': 'Mối quan hệ với người liên hệ khẩn cấp là bắt buộc',
            'occupation': 'Nghề nghiệp là bắt buộc',
        })

    @property
    def full_address(self):
        return ', '.join(part for part in [self.street, self.ward, self.district, self.city] if part)

    def has_room(self):
        return self.room is not None and self.status == 'active'

    def set_address(self, address):
        self.street = address.get('street', self.street)
        self.ward = address.get('ward', self.ward)
        self.district = address.get('district', self.district)
        self.city = address.get('city', self.city)

    def set_emergency_contact(self, contact):
        self.emergency_name = contact.get('name', self.emergency_name)
        self.emergency_phone = contact.get('phone', self.emergency_phone)
        self.emergency_relationship = contact.get('relationship', self.emergency_relationship)

    def to_dict(self, include_room=True):
        data = {
            'id': self.id,
            'name': self.name,
            'phone': self.phone,
            'email': self.email,
            'idCard': self.id_card,
            'dateOfBirth': time_utils.isoformat(self.date_of_birth),
            'gender': self.gender,
            'address': {
                'street': self.street,
                'ward': self.ward,
                'district': self.district,
                'city': self.city,
            },
            'fullAddress': self.full_address,
            'emergencyContact': {
                'name': self.emergency_name,
                'phone': self.emergency_phone,
                'relationship': self.emergency_relationship,
            },
            'occupation': self.occupation,
            'workplace': self.workplace,
            'roomId': self.room_id,
            'moveInDate': time_utils.isoformat(self.move_in_date),
            'moveOutDate': time_utils.isoformat(self.move_out_date),
            'deposit': as_float(self.deposit),
            'status': self.status,
            'notes': self.notes or '',
            'documents': list(self.documents or []),
            'isActive': self.is_active,
            'createdAt': time_utils.isoformat(self.created_at),
            'updatedAt': time_utils.isoformat(self.updated_at),
        }
        if include_room:
            data['room'] = self.room.to_brief() if self.room else None
        return data

    def to_brief(self):
        return {'id': self.id, 'name': self.name, 'phone': self.phone, 'email': self.email}
