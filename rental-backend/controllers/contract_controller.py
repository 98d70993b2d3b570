from flask import Blueprint, request
from extensions import db
from models.contract import Contract
from services import contract_service
from services.errors import ServiceError, from_integrity_error
from utils import time_utils
from utils.responses import success, error, paginated, apply_sort, request_data
from utils.uploads import save_uploads, cleanup_files, delete_upload
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

contract_bp = Blueprint('contract', __name__)

SORT_COLUMNS = {
    'createdAt': 'created_at',
    'contractNumber': 'contract_number',
    'startDate': 'start_date',
    'endDate': 'end_date',
    'monthlyRent': 'monthly_rent',
    'status': 'status',
}


def build_documents(saved, doc_type='contract'):
    if doc_type not in Contract.DOCUMENT_TYPES:
        doc_type = 'contract'
    return [{
        'type': doc_type,
        'url': item['url'],
        'name': item['name'],
        'uploadedAt': time_utils.now().isoformat(),
    } for item in saved]


@contract_bp.route('/contracts', methods=['GET'])
def get_contracts():
    try:
        status = request.args.get('status')
        room_id = request.args.get('roomId', type=int)
        tenant_id = request.args.get('tenantId', type=int)
        search = request.args.get('search', '').strip()
        start_date = time_utils.to_date(request.args.get('startDate'), 'startDate')
        end_date = time_utils.to_date(request.args.get('endDate'), 'endDate')

        query = Contract.query.filter_by(is_active=True)
        if status:
            query = query.filter(Contract.status == status)
        if room_id:
            query = query.filter(Contract.room_id == room_id)
        if tenant_id:
            query = query.filter(Contract.tenant_id == tenant_id)
        if start_date:
            query = query.filter(Contract.start_date >= start_date)
        if end_date:
            query = query.filter(Contract.end_date <= end_date)
        if search:
            query = query.filter(
                Contract.contract_number.ilike(f'%{search}%') |
                Contract.terms.ilike(f'%{search}%') |
                Contract.notes.ilike(f'%{search}%')
            )
        query = apply_sort(query, Contract, SORT_COLUMNS, 'createdAt', 'desc')
        return success(**paginated(query, lambda contract: contract.to_dict()))
    except SQLAlchemyError as e:
        logger.error(f"Database error fetching contracts: {str(e)}")
        return error('Lỗi khi lấy danh sách hợp đồng', 500)


# Hợp đồng sắp hết hạn
@contract_bp.route('/contracts/expiring', methods=['GET'])
def get_expiring_contracts():
    days = request.args.get('days', 30, type=int)
    try:
        contracts = contract_service.find_expiring_soon(days)
        return success([contract.to_dict() for contract in contracts])
    except SQLAlchemyError as e:
        logger.error(f"Database error fetching expiring contracts: {str(e)}")
        return error('Lỗi khi lấy danh sách hợp đồng sắp hết hạn', 500)


# Hợp đồng đã hết hạn
@contract_bp.route('/contracts/expired', methods=['GET'])
def get_expired_contracts():
    try:
        contracts = contract_service.find_expired()
        return success([contract.to_dict() for contract in contracts])
    except SQLAlchemyError as e:
        logger.error(f"Database error fetching expired contracts: {str(e)}")
        return error('Lỗi khi lấy danh sách hợp đồng hết hạn', 500)


@contract_bp.route('/contracts/<int:contract_id>', methods=['GET'])
def get_contract_by_id(contract_id):
    contract = contract_service.get_contract_or_404(contract_id)
    data = contract.to_dict()
    data['payments'] = [payment.to_dict(include_relations=False) for payment in contract.payments.filter_by(is_active=True).all()]
    return success(data)


@contract_bp.route('/contracts', methods=['POST'])
def create_contract():
    saved = []
    try:
        data = request_data()
        saved = save_uploads(request.files.getlist('documents'), 'contracts')
        contract = contract_service.create_contract(data, build_documents(saved))
        return success(contract.to_dict(), 'Tạo hợp đồng mới thành công', 201)
    except IntegrityError as e:
        cleanup_files(saved)
        raise from_integrity_error(e)
    except ServiceError:
        cleanup_files(saved)
        raise
    except SQLAlchemyError as e:
        cleanup_files(saved)
        logger.error(f"Database error creating contract: {str(e)}")
        return error('Lỗi khi tạo hợp đồng mới', 500)


@contract_bp.route('/contracts/<int:contract_id>', methods=['PUT'])
def update_contract(contract_id):
    contract = contract_service.get_contract_or_404(contract_id)
    saved = []
    try:
        data = request_data()
        for key in ('status', 'roomId', 'tenantId', 'contractNumber'):
            data.pop(key, None)
        saved = save_uploads(request.files.getlist('documents'), 'contracts')
        contract = contract_service.update_contract(contract, data, build_documents(saved))
        return success(contract.to_dict(), 'Cập nhật hợp đồng thành công')
    except ServiceError:
        cleanup_files(saved)
        raise
    except SQLAlchemyError as e:
        cleanup_files(saved)
        logger.error(f"Database error updating contract {contract_id}: {str(e)}")
        return error('Lỗi khi cập nhật hợp đồng', 500)


@contract_bp.route('/contracts/<int:contract_id>/renew', methods=['PUT'])
def renew_contract(contract_id):
    data = request_data()
    contract = contract_service.get_contract_or_404(contract_id, lock=True)
    try:
        contract = contract_service.renew_contract(contract, data.get('newEndDate'), data.get('reason'))
    except SQLAlchemyError as e:
        logger.error(f"Database error renewing contract {contract_id}: {str(e)}")
        return error('Lỗi khi gia hạn hợp đồng', 500)
    return success(contract.to_dict(), 'Gia hạn hợp đồng thành công')


@contract_bp.route('/contracts/<int:contract_id>/terminate', methods=['PUT'])
def terminate_contract(contract_id):
    data = request_data()
    contract = contract_service.get_contract_or_404(contract_id, lock=True)
    try:
        contract = contract_service.terminate_contract(contract, data.get('reason'))
    except SQLAlchemyError as e:
        logger.error(f"Database error terminating contract {contract_id}: {str(e)}")
        return error('Lỗi khi kết thúc hợp đồng', 500)
    return success(contract.to_dict(), 'Kết thúc hợp đồng thành công')


@contract_bp.route('/contracts/<int:contract_id>', methods=['DELETE'])
def delete_contract(contract_id):
    contract = contract_service.get_contract_or_404(contract_id)
    try:
        contract_service.delete_contract(contract)
    except SQLAlchemyError as e:
        logger.error(f"Database error deleting contract {contract_id}: {str(e)}")
        return error('Lỗi khi xóa hợp đồng', 500)
    return success(message='Xóa hợp đồng thành công')


@contract_bp.route('/contracts/<int:contract_id>/document/<int:document_index>', methods=['DELETE'])
def delete_contract_document(contract_id, document_index):
    contract = contract_service.get_contract_or_404(contract_id)
    try:
        removed = contract_service.remove_document(contract, document_index)
    except SQLAlchemyError as e:
        logger.error(f"Database error deleting document of contract {contract_id}: {str(e)}")
        return error('Lỗi khi xóa tài liệu', 500)
    delete_upload(removed.get('url'))
    return success(contract.to_dict(), 'Xóa tài liệu thành công')


@contract_bp.route('/contracts/stats/overview', methods=['GET'])
def get_contract_stats():
    try:
        stats = contract_service.contract_stats()
        logger.info('Fetched contract statistics')
        return success(stats)
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database error fetching contract stats: {str(e)}")
        return error('Lỗi khi lấy thống kê hợp đồng', 500)
