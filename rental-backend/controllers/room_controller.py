from flask import Blueprint, request
from extensions import db
from models.room import Room
from models.contract import Contract
from models.payment import Payment
from services.errors import NotFound, PreconditionFailed, ValidationError, from_integrity_error
from utils import time_utils
from utils.responses import success, error, paginated, apply_sort, request_data
from utils.uploads import save_uploads, cleanup_files, delete_upload, IMAGE_EXTENSIONS
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from collections import Counter
import logging

# Thiết lập logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

room_bp = Blueprint('room', __name__)

SORT_COLUMNS = {
    'number': 'number',
    'name': 'name',
    'price': 'price',
    'floor': 'floor',
    'area': 'area',
    'status': 'status',
    'createdAt': 'created_at',
}

ROOM_FIELDS = {
    'number': 'number',
    'name': 'name',
    'status': 'status',
    'price': 'price',
    'area': 'area',
    'floor': 'floor',
    'description': 'description',
}


def get_room_or_404(room_id):
    room = Room.query.filter_by(id=room_id, is_active=True).first()
    if not room:
        raise NotFound('Không tìm thấy phòng')
    return room


def apply_room_fields(room, data):
    for key, column in ROOM_FIELDS.items():
        if key in data:
            setattr(room, column, data[key])
    if isinstance(data.get('amenities'), dict):
        room.set_amenities(data['amenities'])
    if room.tenant is not None and room.status != 'occupied':
        raise PreconditionFailed('Phòng đang có khách thuê, không thể đổi trạng thái')
    if room.status == 'occupied' and room.tenant is None:
        # Trạng thái occupied chỉ do move-in/hợp đồng đặt
        room.status = 'available'


def build_images(saved, existing_count=0):
    return [{
        'url': item['url'],
        'caption': '',
        'isPrimary': existing_count == 0 and index == 0,
    } for index, item in enumerate(saved)]


# Lấy danh sách phòng
@room_bp.route('/rooms', methods=['GET'])
def get_rooms():
    try:
        status = request.args.get('status')
        floor = request.args.get('floor', type=int)
        min_price = request.args.get('minPrice', type=float)
        max_price = request.args.get('maxPrice', type=float)
        search = request.args.get('search', '').strip()

        query = Room.query.filter_by(is_active=True)
        if status:
            query = query.filter(Room.status == status)
        if floor is not None:
            query = query.filter(Room.floor == floor)
        if min_price is not None:
            query = query.filter(Room.price >= min_price)
        if max_price is not None:
            query = query.filter(Room.price <= max_price)
        if search:
            query = query.filter(
                Room.number.ilike(f'%{search}%') |
                Room.name.ilike(f'%{search}%') |
                Room.description.ilike(f'%{search}%')
            )
        query = apply_sort(query, Room, SORT_COLUMNS, 'number', 'asc')
        logger.info(f"Listing rooms: status={status}, floor={floor}, search={search}")
        return success(**paginated(query, lambda room: room.to_dict()))
    except SQLAlchemyError as e:
        logger.error(f"Database error fetching rooms: {str(e)}")
        return error('Lỗi khi lấy danh sách phòng', 500)


# Lấy danh sách phòng trống
@room_bp.route('/rooms/available', methods=['GET'])
def get_available_rooms():
    try:
        rooms = Room.query.filter_by(status='available', is_active=True).order_by(Room.number.asc()).all()
        return success([room.to_dict() for room in rooms])
    except SQLAlchemyError as e:
        logger.error(f"Database error fetching available rooms: {str(e)}")
        return error('Lỗi khi lấy danh sách phòng trống', 500)


# Lấy chi tiết phòng kèm hợp đồng và thanh toán
@room_bp.route('/rooms/<int:room_id>', methods=['GET'])
def get_room_by_id(room_id):
    room = get_room_or_404(room_id)
    data = room.to_dict()
    data['contracts'] = [
        contract.to_dict(include_relations=False)
        for contract in room.contracts.filter_by(is_active=True).order_by(Contract.created_at.desc()).all()
    ]
    data['payments'] = [
        payment.to_dict(include_relations=False)
        for payment in room.payments.filter_by(is_active=True).order_by(Payment.due_date.desc()).all()
    ]
    return success(data)


# Tạo phòng mới
@room_bp.route('/rooms', methods=['POST'])
def create_room():
    saved = []
    try:
        data = request_data()
        saved = save_uploads(request.files.getlist('images'), 'rooms', IMAGE_EXTENSIONS)
        room = Room(status='available', description='', images=build_images(saved))
        data.pop('tenant', None)
        data.pop('tenantId', None)
        apply_room_fields(room, data)
        db.session.add(room)
        db.session.commit()
        logger.info(f"Created room {room.number}")
        return success(room.to_dict(), 'Tạo phòng mới thành công', 201)
    except IntegrityError as e:
        db.session.rollback()
        cleanup_files(saved)
        raise from_integrity_error(e)
    except ValidationError:
        db.session.rollback()
        cleanup_files(saved)
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        cleanup_files(saved)
        logger.error(f"Database error creating room: {str(e)}")
        return error('Lỗi khi tạo phòng mới', 500)


# Cập nhật phòng; liên kết khách thuê chỉ thay đổi qua move-in/move-out
@room_bp.route('/rooms/<int:room_id>', methods=['PUT'])
def update_room(room_id):
    room = get_room_or_404(room_id)
    saved = []
    try:
        data = request_data()
        if 'tenant' in data or 'tenantId' in data:
            raise PreconditionFailed('Không thể gán khách thuê trực tiếp, hãy dùng chức năng chuyển vào/ra phòng')
        saved = save_uploads(request.files.getlist('images'), 'rooms', IMAGE_EXTENSIONS)
        apply_room_fields(room, data)
        if saved:
            room.images = list(room.images or []) + build_images(saved, len(room.images or []))
        db.session.commit()
        logger.info(f"Updated room {room.number}")
        return success(room.to_dict(), 'Cập nhật phòng thành công')
    except IntegrityError as e:
        db.session.rollback()
        cleanup_files(saved)
        raise from_integrity_error(e)
    except ValidationError:
        db.session.rollback()
        cleanup_files(saved)
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        cleanup_files(saved)
        logger.error(f"Database error updating room {room_id}: {str(e)}")
        return error('Lỗi khi cập nhật phòng', 500)


# Xóa mềm phòng
@room_bp.route('/rooms/<int:room_id>', methods=['DELETE'])
def delete_room(room_id):
    room = get_room_or_404(room_id)
    if room.tenant is not None:
        raise PreconditionFailed('Không thể xóa phòng đang có khách thuê')
    if room.contracts.count() > 0 or room.payments.count() > 0:
        raise PreconditionFailed('Không thể xóa phòng có hợp đồng hoặc thanh toán liên quan')
    try:
        room.is_active = False
        db.session.commit()
        logger.info(f"Soft deleted room {room.number}")
        return success(message='Xóa phòng thành công')
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database error deleting room {room_id}: {str(e)}")
        return error('Lỗi khi xóa phòng', 500)


# Xóa hình ảnh phòng theo vị trí
@room_bp.route('/rooms/<int:room_id>/images/<int:image_index>', methods=['DELETE'])
def delete_room_image(room_id, image_index):
    room = get_room_or_404(room_id)
    images = list(room.images or [])
    if image_index < 0 or image_index >= len(images):
        raise ValidationError('Index hình ảnh không hợp lệ')
    removed = images.pop(image_index)
    if removed.get('isPrimary') and images:
        images[0] = dict(images[0], isPrimary=True)
    try:
        room.images = images
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database error deleting image of room {room_id}: {str(e)}")
        return error('Lỗi khi xóa hình ảnh', 500)
    delete_upload(removed.get('url'))
    logger.info(f"Removed image {image_index} from room {room.number}")
    return success(room.to_dict(), 'Xóa hình ảnh thành công')


# Thống kê phòng
@room_bp.route('/rooms/stats/overview', methods=['GET'])
def get_room_stats():
    try:
        rooms = Room.query.filter_by(is_active=True).all()
        statuses = Counter(room.status for room in rooms)
        total = len(rooms)

        floors = {}
        for room in rooms:
            entry = floors.setdefault(room.floor, {
                'floor': room.floor, 'total': 0, 'available': 0, 'occupied': 0, 'maintenance': 0, 'reserved': 0
            })
            entry['total'] += 1
            entry[room.status] += 1

        revenue = {}
        for payment in Payment.query.filter_by(status='paid').all():
            key = (payment.year, payment.month)
            entry = revenue.setdefault(key, {'year': key[0], 'month': key[1], 'totalRevenue': 0.0, 'totalPayments': 0})
            entry['totalRevenue'] += float(payment.total_amount)
            entry['totalPayments'] += 1

        logger.info('Fetched room statistics')
        return success({
            'overview': {
                'totalRooms': total,
                'availableRooms': statuses['available'],
                'occupiedRooms': statuses['occupied'],
                'maintenanceRooms': statuses['maintenance'],
                'reservedRooms': statuses['reserved'],
                'occupancyRate': round(statuses['occupied'] / total * 100, 1) if total else 0,
            },
            'floorStats': [floors[floor] for floor in sorted(floors)],
            'monthlyRevenue': [revenue[key] for key in sorted(revenue, reverse=True)[:12]],
            'generatedAt': time_utils.format_display(),
        })
    except SQLAlchemyError as e:
        logger.error(f"Database error fetching room stats: {str(e)}")
        return error('Lỗi khi lấy thống kê phòng', 500)
