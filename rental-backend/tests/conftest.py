import itertools

import pendulum
import pytest
from sqlalchemy.pool import StaticPool

from app import create_app
from extensions import db
from models.room import Room
from models.tenant import Tenant
from services import contract_service
from utils import time_utils


class FrozenClock:
    """Đồng hồ cố định thay cho time_utils.local_now()."""

    def __init__(self):
        self.current = None
        self.set(2024, 1, 1, 9)

    def set(self, year, month, day, hour=0, minute=0, second=0):
        self.current = pendulum.datetime(year, month, day, hour, minute, second,
                                         tz=time_utils.DEFAULT_TIMEZONE)
        return self.current

    def __call__(self):
        return self.current


@pytest.fixture
def clock(monkeypatch):
    frozen = FrozenClock()
    monkeypatch.setattr(time_utils, 'local_now', frozen)
    return frozen


@pytest.fixture
def app(monkeypatch, tmp_path, clock):
    monkeypatch.setenv('DATABASE_URL', 'sqlite://')
    monkeypatch.delenv('DISCORD_WEBHOOK_URL', raising=False)
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'SQLALCHEMY_ENGINE_OPTIONS': {
            'poolclass': StaticPool,
            'connect_args': {'check_same_thread': False},
        },
        'RATELIMIT_ENABLED': False,
        'ACCESS_CONTROL_ENABLED': False,
        'BACKUP_WINDOW_ENABLED': False,
        'SCHEDULER_ENABLED': False,
        'DISCORD_WEBHOOK_URL': None,
        'UPLOAD_BASE': str(tmp_path / 'uploads'),
        'BACKUP_DIR': str(tmp_path / 'backups'),
        'LOG_DIR': str(tmp_path / 'logs'),
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_room(app):
    def factory(number='101', **fields):
        values = {
            'number': number,
            'name': f'Phòng {number}',
            'price': 800000,
            'area': 20,
            'floor': 1,
            'status': 'available',
        }
        values.update(fields)
        room = Room(**values)
        db.session.add(room)
        db.session.commit()
        return room
    return factory


@pytest.fixture
def make_tenant(app):
    counter = itertools.count(1)

    def factory(**fields):
        n = next(counter)
        values = {
            'name': f'Khách {n}',
            'phone': f'09000000{n:02d}',
            'email': f'khach{n}@example.com',
            'id_card': f'0790000000{n:02d}',
            'date_of_birth': '1995-05-10',
            'gender': 'male',
            'street': '12 Lê Lợi',
            'ward': 'Bến Nghé',
            'district': 'Quận 1',
            'city': 'TP.HCM',
            'emergency_name': 'Nguyễn Văn A',
            'emergency_phone': '0911111111',
            'emergency_relationship': 'Anh trai',
            'occupation': 'Kỹ sư',
            'status': 'active',
            'deposit': 0,
        }
        values.update(fields)
        tenant = Tenant(**values)
        db.session.add(tenant)
        db.session.commit()
        return tenant
    return factory


@pytest.fixture
def contract_payload():
    def build(room, tenant, **fields):
        data = {
            'roomId': room.id,
            'tenantId': tenant.id,
            'startDate': '2024-01-01',
            'endDate': '2024-12-31',
            'monthlyRent': 800000,
            'deposit': 800000,
            'electricityPrice': 3000,
            'waterPrice': 5000,
            'paymentDay': 5,
            'terms': 'Thanh toán trước ngày 5 hằng tháng',
        }
        data.update(fields)
        return data
    return build


@pytest.fixture
def make_contract(app, make_room, make_tenant, contract_payload):
    def factory(room=None, tenant=None, **fields):
        room = room or make_room()
        tenant = tenant or make_tenant()
        return contract_service.create_contract(contract_payload(room, tenant, **fields))
    return factory
