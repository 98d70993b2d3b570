from extensions import db
from models.hooks import require_fields, to_money, to_float, check_choice, as_float
from services.errors import ValidationError
from utils import time_utils

AMENITY_FIELDS = {
    'hasWifi': 'has_wifi',
    'hasAirConditioner': 'has_air_conditioner',
    'hasRefrigerator': 'has_refrigerator',
    'hasWashingMachine': 'has_washing_machine',
    'hasBalcony': 'has_balcony',
    'hasPrivateBathroom': 'has_private_bathroom',
}


class Room(db.Model):
    __tablename__ = 'rooms'
    __table_args__ = (
        db.Index('idx_room_status', 'status'),
        db.Index('idx_room_price', 'price'),
        db.Index('idx_room_floor', 'floor'),
    )
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    number = db.Column(db.String(20), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    status = db.Column(db.String(20), default='available', nullable=False)
    price = db.Column(db.Numeric(14, 2), nullable=False)
    area = db.Column(db.Float, nullable=False)
    floor = db.Column(db.Integer, nullable=False)
    has_wifi = db.Column(db.Boolean, default=False, nullable=False)
    has_air_conditioner = db.Column(db.Boolean, default=False, nullable=False)
    has_refrigerator = db.Column(db.Boolean, default=False, nullable=False)
    has_washing_machine = db.Column(db.Boolean, default=False, nullable=False)
    has_balcony = db.Column(db.Boolean, default=False, nullable=False)
    has_private_bathroom = db.Column(db.Boolean, default=False, nullable=False)
    description = db.Column(db.Text, default='')
    images = db.Column(db.JSON, default=list)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id', use_alter=True, name='fk_rooms_tenant_id', ondelete='SET NULL'))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: time_utils.now(), nullable=False)
    updated_at = db.Column(db.DateTime, default=lambda: time_utils.now(), onupdate=lambda: time_utils.now(), nullable=False)

    tenant = db.relationship('Tenant', foreign_keys=[tenant_id], post_update=True, lazy=True)

    ALLOWED_STATUSES = ['available', 'occupied', 'maintenance', 'reserved']

    @db.validates('status')
    def validate_status(self, key, value):
        return check_choice(value, self.ALLOWED_STATUSES, 'Trạng thái phòng không hợp lệ')

    @db.validates('price')
    def validate_price(self, key, value):
        return to_money(value, 'Giá phòng phải lớn hơn 0')

    @db.validates('area')
    def validate_area(self, key, value):
        return to_float(value, 'Diện tích phải lớn hơn 0')

    @db.validates('floor')
    def validate_floor(self, key, value):
        if value is None or value == '':
            return None
        try:
            floor = int(value)
        except (TypeError, ValueError):
            raise ValidationError('Tầng phải từ 1 trở lên')
        if floor < 1:
            raise ValidationError('Tầng phải từ 1 trở lên')
        return floor

    def before_save(self):
        require_fields(self, {
            'number': 'Số phòng là bắt buộc',
            'name': 'Tên phòng là bắt buộc',
            'price': 'Giá phòng là bắt buộc',
            'area': 'Diện tích phòng là bắt buộc',
            'floor': 'Tầng là bắt buộc',
        })
        has_tenant = self.tenant is not None
        if has_tenant:
            self.status = 'occupied'
        elif not has_tenant and self.status == 'occupied':
            self.status = 'available'

    def is_occupied(self):
        return self.status == 'occupied' and self.tenant is not None

    def set_amenities(self, amenities):
        for key, column in AMENITY_FIELDS.items():
            if key in amenities:
                value = amenities[key]
                if isinstance(value, str):
                    value = value.strip().lower() in ('true', '1', 'yes')
                setattr(self, column, bool(value))

    def amenities(self):
        return {key: bool(getattr(self, column)) for key, column in AMENITY_FIELDS.items()}

    def to_dict(self, include_tenant=True):
        data = {
            'id': self.id,
            'number': self.number,
            'name': self.name,
            'status': self.status,
            'price': as_float(self.price),
            'area': self.area,
            'floor': self.floor,
            'amenities': self.amenities(),
            'description': self.description or '',
            'images': list(self.images or []),
            'tenantId': self.tenant_id,
            'isActive': self.is_active,
            'createdAt': time_utils.isoformat(self.created_at),
            'updatedAt': time_utils.isoformat(self.updated_at),
        }
        if include_tenant:
            data['tenant'] = self.tenant.to_brief() if self.tenant else None
        return data

    def to_brief(self):
        return {'id': self.id, 'number': self.number, 'name': self.name, 'floor': self.floor, 'price': as_float(self.price)}
