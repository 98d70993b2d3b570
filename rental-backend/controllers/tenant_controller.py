from flask import Blueprint, request
from extensions import db
from models.tenant import Tenant
from models.contract import Contract
from models.payment import Payment
from services.errors import PreconditionFailed, ValidationError, from_integrity_error
from services.tenant_service import get_tenant_or_404, get_room_or_404, move_tenant_in, move_tenant_out
from utils import time_utils
from utils.responses import success, error, paginated, apply_sort, request_data
from utils.uploads import save_uploads, cleanup_files, delete_upload
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from collections import Counter
from datetime import datetime
import logging

# Thiết lập logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

tenant_bp = Blueprint('tenant', __name__)

SORT_COLUMNS = {
    'name': 'name',
    'phone': 'phone',
    'email': 'email',
    'status': 'status',
    'moveInDate': 'move_in_date',
    'createdAt': 'created_at',
}

TENANT_FIELDS = {
    'name': 'name',
    'phone': 'phone',
    'email': 'email',
    'idCard': 'id_card',
    'dateOfBirth': 'date_of_birth',
    'gender': 'gender',
    'occupation': 'occupation',
    'workplace': 'workplace',
    'deposit': 'deposit',
    'notes': 'notes',
}

AGE_BUCKETS = ['under_25', '25_35', '35_45', 'over_45']


def apply_tenant_fields(tenant, data):
    for key, column in TENANT_FIELDS.items():
        if key in data:
            setattr(tenant, column, data[key])
    if isinstance(data.get('address'), dict):
        tenant.set_address(data['address'])
    if isinstance(data.get('emergencyContact'), dict):
        tenant.set_emergency_contact(data['emergencyContact'])


def build_documents(saved, doc_type='other'):
    if doc_type not in Tenant.DOCUMENT_TYPES:
        doc_type = 'other'
    return [{
        'type': doc_type,
        'url': item['url'],
        'name': item['name'],
        'uploadedAt': time_utils.now().isoformat(),
    } for item in saved]


def parse_room_id(value):
    if value in (None, ''):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError('Mã phòng không hợp lệ')


def age_bucket(date_of_birth, current_year):
    age = current_year - date_of_birth.year
    if age < 25:
        return 'under_25'
    if age < 35:
        return '25_35'
    if age < 45:
        return '35_45'
    return 'over_45'


# Lấy danh sách khách thuê
@tenant_bp.route('/tenants', methods=['GET'])
def get_tenants():
    try:
        status = request.args.get('status')
        room_id = request.args.get('roomId', type=int)
        search = request.args.get('search', '').strip()

        query = Tenant.query.filter_by(is_active=True)
        if status:
            query = query.filter(Tenant.status == status)
        if room_id:
            query = query.filter(Tenant.room_id == room_id)
        if search:
            query = query.filter(
                Tenant.name.ilike(f'%{search}%') |
                Tenant.phone.ilike(f'%{search}%') |
                Tenant.email.ilike(f'%{search}%') |
                Tenant.id_card.ilike(f'%{search}%')
            )
        query = apply_sort(query, Tenant, SORT_COLUMNS, 'name', 'asc')
        return success(**paginated(query, lambda tenant: tenant.to_dict()))
    except SQLAlchemyError as e:
        logger.error(f"Database error fetching tenants: {str(e)}")
        return error('Lỗi khi lấy danh sách khách thuê', 500)


# Lấy danh sách khách thuê đang hoạt động
@tenant_bp.route('/tenants/active', methods=['GET'])
def get_active_tenants():
    try:
        tenants = Tenant.query.filter_by(status='active', is_active=True).order_by(Tenant.name.asc()).all()
        return success([tenant.to_dict() for tenant in tenants])
    except SQLAlchemyError as e:
        logger.error(f"Database error fetching active tenants: {str(e)}")
        return error('Lỗi khi lấy danh sách khách thuê', 500)


@tenant_bp.route('/tenants/<int:tenant_id>', methods=['GET'])
def get_tenant_by_id(tenant_id):
    tenant = get_tenant_or_404(tenant_id)
    data = tenant.to_dict()
    data['contracts'] = [
        contract.to_dict(include_relations=False)
        for contract in tenant.contracts.filter_by(is_active=True).order_by(Contract.created_at.desc()).all()
    ]
    data['payments'] = [
        payment.to_dict(include_relations=False)
        for payment in tenant.payments.filter_by(is_active=True).order_by(Payment.due_date.desc()).all()
    ]
    return success(data)


# Tạo khách thuê mới
@tenant_bp.route('/tenants', methods=['POST'])
def create_tenant():
    saved = []
    try:
        data = request_data()
        saved = save_uploads(request.files.getlist('documents'), 'tenants')
        tenant = Tenant(
            status='active',
            deposit=0,
            notes='',
            documents=build_documents(saved, data.get('documentType', 'other')),
        )
        apply_tenant_fields(tenant, data)
        db.session.add(tenant)
        room_id = parse_room_id(data.get('roomId'))
        if room_id:
            room = get_room_or_404(room_id, lock=True)
            move_tenant_in(tenant, room, data.get('moveInDate'))
        db.session.commit()
        logger.info(f"Created tenant {tenant.name}")
        return success(tenant.to_dict(), 'Tạo khách thuê mới thành công', 201)
    except IntegrityError as e:
        db.session.rollback()
        cleanup_files(saved)
        raise from_integrity_error(e)
    except (ValidationError, PreconditionFailed):
        db.session.rollback()
        cleanup_files(saved)
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        cleanup_files(saved)
        logger.error(f"Database error creating tenant: {str(e)}")
        return error('Lỗi khi tạo khách thuê mới', 500)


# Cập nhật khách thuê; đổi phòng/trạng thái đi qua move-in/move-out
@tenant_bp.route('/tenants/<int:tenant_id>', methods=['PUT'])
def update_tenant(tenant_id):
    tenant = get_tenant_or_404(tenant_id, lock=True)
    saved = []
    try:
        data = request_data()
        saved = save_uploads(request.files.getlist('documents'), 'tenants')
        apply_tenant_fields(tenant, data)
        if saved:
            tenant.documents = list(tenant.documents or []) + build_documents(saved, data.get('documentType', 'other'))

        new_status = data.get('status')
        room_id = parse_room_id(data.get('roomId'))
        if new_status in ('inactive', 'moved_out') and tenant.room is not None:
            move_tenant_out(tenant, data.get('moveOutDate'), status=new_status)
        elif room_id and (tenant.room_id != room_id or tenant.status != 'active'):
            room = get_room_or_404(room_id, lock=True)
            move_tenant_in(tenant, room, data.get('moveInDate'))
        elif new_status:
            tenant.status = new_status
        db.session.commit()
        logger.info(f"Updated tenant {tenant.name}")
        return success(tenant.to_dict(), 'Cập nhật khách thuê thành công')
    except IntegrityError as e:
        db.session.rollback()
        cleanup_files(saved)
        raise from_integrity_error(e)
    except (ValidationError, PreconditionFailed):
        db.session.rollback()
        cleanup_files(saved)
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        cleanup_files(saved)
        logger.error(f"Database error updating tenant {tenant_id}: {str(e)}")
        return error('Lỗi khi cập nhật khách thuê', 500)


# Xóa mềm khách thuê
@tenant_bp.route('/tenants/<int:tenant_id>', methods=['DELETE'])
def delete_tenant(tenant_id):
    tenant = get_tenant_or_404(tenant_id)
    if tenant.status == 'active' and tenant.room is not None:
        raise PreconditionFailed('Không thể xóa khách thuê đang thuê phòng')
    if tenant.contracts.count() > 0 or tenant.payments.count() > 0:
        raise PreconditionFailed('Không thể xóa khách thuê có hợp đồng hoặc thanh toán liên quan')
    try:
        tenant.is_active = False
        db.session.commit()
        logger.info(f"Soft deleted tenant {tenant.name}")
        return success(message='Xóa khách thuê thành công')
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database error deleting tenant {tenant_id}: {str(e)}")
        return error('Lỗi khi xóa khách thuê', 500)


# Chuyển khách thuê vào phòng
@tenant_bp.route('/tenants/<int:tenant_id>/move-in', methods=['PUT'])
def tenant_move_in(tenant_id):
    data = request_data()
    try:
        tenant = get_tenant_or_404(tenant_id, lock=True)
        room = get_room_or_404(data.get('roomId'), lock=True)
        move_tenant_in(tenant, room, data.get('moveInDate'))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database error moving tenant {tenant_id} in: {str(e)}")
        return error('Lỗi khi chuyển khách thuê vào phòng', 500)
    return success(tenant.to_dict(), 'Chuyển khách thuê vào phòng thành công')


# Chuyển khách thuê ra khỏi phòng
@tenant_bp.route('/tenants/<int:tenant_id>/move-out', methods=['PUT'])
def tenant_move_out(tenant_id):
    data = request_data()
    try:
        tenant = get_tenant_or_404(tenant_id, lock=True)
        move_tenant_out(tenant, data.get('moveOutDate'), data.get('reason'))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database error moving tenant {tenant_id} out: {str(e)}")
        return error('Lỗi khi chuyển khách thuê ra khỏi phòng', 500)
    return success(tenant.to_dict(), 'Chuyển khách thuê ra khỏi phòng thành công')


# Xóa tài liệu khách thuê theo vị trí
@tenant_bp.route('/tenants/<int:tenant_id>/documents/<int:document_index>', methods=['DELETE'])
def delete_tenant_document(tenant_id, document_index):
    tenant = get_tenant_or_404(tenant_id)
    documents = list(tenant.documents or [])
    if document_index < 0 or document_index >= len(documents):
        raise ValidationError('Index tài liệu không hợp lệ')
    removed = documents.pop(document_index)
    try:
        tenant.documents = documents
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database error deleting document of tenant {tenant_id}: {str(e)}")
        return error('Lỗi khi xóa tài liệu', 500)
    delete_upload(removed.get('url'))
    return success(tenant.to_dict(), 'Xóa tài liệu thành công')


# Thống kê khách thuê
@tenant_bp.route('/tenants/stats/overview', methods=['GET'])
def get_tenant_stats():
    try:
        tenants = Tenant.query.filter_by(is_active=True).all()
        statuses = Counter(tenant.status for tenant in tenants)
        genders = Counter(tenant.gender for tenant in tenants)
        now = time_utils.now()
        ages = Counter(age_bucket(tenant.date_of_birth, now.year) for tenant in tenants if tenant.date_of_birth)
        month_start = datetime(now.year, now.month, 1)
        new_this_month = sum(1 for tenant in tenants if tenant.created_at and tenant.created_at >= month_start)

        logger.info('Fetched tenant statistics')
        return success({
            'overview': {
                'totalTenants': len(tenants),
                'activeTenants': statuses['active'],
                'inactiveTenants': statuses['inactive'],
                'movedOutTenants': statuses['moved_out'],
                'newTenantsThisMonth': new_this_month,
            },
            'genderStats': [{'gender': gender, 'count': count} for gender, count in genders.items()],
            'ageStats': [{'range': bucket, 'count': ages[bucket]} for bucket in AGE_BUCKETS if ages[bucket]],
        })
    except SQLAlchemyError as e:
        logger.error(f"Database error fetching tenant stats: {str(e)}")
        return error('Lỗi khi lấy thống kê khách thuê', 500)
