"""Chuyển khách thuê vào/ra phòng.

Đây là nơi duy nhất ghi liên kết Room.tenant <-> Tenant.room. Các hàm không
commit; caller (controller hoặc contract_service) quyết định transaction.
"""
import logging

from extensions import db
from models.room import Room
from models.tenant import Tenant
from services.errors import NotFound, PreconditionFailed
from utils import time_utils

logger = logging.getLogger(__name__)


def lock_room(room_id):
    return Room.query.filter_by(id=room_id, is_active=True).with_for_update().first()


def lock_tenant(tenant_id):
    return Tenant.query.filter_by(id=tenant_id, is_active=True).with_for_update().first()


def get_room_or_404(room_id, lock=False):
    room = lock_room(room_id) if lock else Room.query.filter_by(id=room_id, is_active=True).first()
    if not room:
        raise NotFound('Không tìm thấy phòng')
    return room


def get_tenant_or_404(tenant_id, lock=False):
    tenant = lock_tenant(tenant_id) if lock else Tenant.query.filter_by(id=tenant_id, is_active=True).first()
    if not tenant:
        raise NotFound('Không tìm thấy khách thuê')
    return tenant


def _release_room(room):
    room.tenant = None
    room.tenant_id = None
    if room.status == 'occupied':
        room.status = 'available'


def move_tenant_in(tenant, room, move_in_date=None):
    if room.status != 'available' or room.tenant is not None:
        raise PreconditionFailed('Phòng không có sẵn')

    current_room = tenant.room
    if current_room is not None and current_room.id != room.id:
        if current_room.tenant_id == tenant.id:
            _release_room(current_room)
        logger.info(f"Tenant {tenant.name} leaves room {current_room.number} to move into {room.number}")

    room.tenant = tenant
    room.status = 'occupied'
    tenant.room = room
    tenant.status = 'active'
    tenant.move_in_date = move_in_date or time_utils.today()
    tenant.move_out_date = None
    db.session.add_all([room, tenant])
    logger.info(f"Tenant {tenant.name} moved into room {room.number}")
    return tenant


def move_tenant_out(tenant, move_out_date=None, reason=None, status='moved_out'):
    room = tenant.room
    if room is None:
        raise PreconditionFailed('Khách thuê không đang thuê phòng nào')

    if room.tenant_id == tenant.id or room.tenant is tenant:
        _release_room(room)
    tenant.room = None
    tenant.room_id = None
    tenant.status = status
    tenant.move_out_date = move_out_date or time_utils.today()
    if reason:
        tenant.notes = (tenant.notes or '') + f'\nLý do chuyển đi: {reason}'
    db.session.add_all([room, tenant])
    logger.info(f"Tenant {tenant.name} moved out of room {room.number}")
    return tenant
