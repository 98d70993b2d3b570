"""Vòng đời hợp đồng: tạo, sửa, gia hạn, kết thúc, xóa và các truy vấn liên quan.

Mỗi lệnh chạy trong một transaction: commit khi thành công, rollback khi có
bất kỳ lỗi nào, để Contract, Room, Tenant và Payment đầu tiên luôn nhất quán.
"""
import logging
from collections import Counter
from datetime import timedelta

from extensions import db
from models.contract import Contract, ContractRenewal
from models.hooks import config_default
from services import payment_service, sequence
from services.errors import NotFound, PreconditionFailed, ValidationError
from services.tenant_service import lock_room, lock_tenant, move_tenant_in, move_tenant_out
from utils import time_utils

logger = logging.getLogger(__name__)

# Trường JSON (camelCase) -> cột model
CONTRACT_FIELDS = {
    'startDate': 'start_date',
    'endDate': 'end_date',
    'monthlyRent': 'monthly_rent',
    'deposit': 'deposit',
    'electricityPrice': 'electricity_price',
    'waterPrice': 'water_price',
    'internetPrice': 'internet_price',
    'parkingPrice': 'parking_price',
    'cleaningPrice': 'cleaning_price',
    'paymentDay': 'payment_day',
    'terms': 'terms',
    'rules': 'rules',
    'witnesses': 'witnesses',
    'notes': 'notes',
}

DURATION_BUCKETS = ['under_6_months', '6_12_months', '1_2_years', 'over_2_years']


def get_contract_or_404(contract_id, lock=False):
    query = Contract.query.filter_by(id=contract_id, is_active=True)
    if lock:
        query = query.with_for_update()
    contract = query.first()
    if not contract:
        raise NotFound('Không tìm thấy hợp đồng')
    return contract


def _ref(data, name):
    return data.get(f'{name}Id', data.get(name))


def _active_contract_of(tenant):
    return Contract.query.filter(
        Contract.tenant_id == tenant.id,
        Contract.is_active.is_(True),
        Contract.status.in_(('active', 'renewed')),
    ).first()


def _apply_fields(contract, data):
    for key, column in CONTRACT_FIELDS.items():
        if key in data:
            setattr(contract, column, data[key])


def _check_dates(contract):
    if not contract.start_date:
        raise ValidationError('Ngày bắt đầu là bắt buộc')
    if not contract.end_date:
        raise ValidationError('Ngày kết thúc là bắt buộc')
    if contract.end_date <= contract.start_date:
        raise ValidationError('Ngày kết thúc phải sau ngày bắt đầu')


def create_contract(data, documents=None):
    """Tạo hợp đồng, chuyển khách vào phòng và tạo thanh toán tháng đầu."""
    try:
        room = lock_room(_ref(data, 'room'))
        tenant = lock_tenant(_ref(data, 'tenant'))
        if not room or not tenant:
            raise PreconditionFailed('Phòng hoặc khách thuê không tồn tại')
        if room.status != 'available':
            raise PreconditionFailed('Phòng không có sẵn để tạo hợp đồng')
        if _active_contract_of(tenant) is not None:
            raise PreconditionFailed('Khách thuê đang có hợp đồng hiệu lực khác')

        contract = Contract(
            electricity_price=config_default('DEFAULT_ELECTRICITY_PRICE', 3000),
            water_price=config_default('DEFAULT_WATER_PRICE', 5000),
            internet_price=0,
            parking_price=0,
            cleaning_price=0,
            payment_day=1,
            status='active',
            rules=[],
            witnesses=[],
            documents=list(documents or []),
            notes='',
        )
        _apply_fields(contract, data)
        _check_dates(contract)
        contract.contract_number = sequence.next_contract_number()
        db.session.add(contract)
        contract.room = room
        contract.tenant = tenant

        move_tenant_in(tenant, room, contract.start_date)
        payment_service.build_payment_for_contract(
            contract, contract.start_date.month, contract.start_date.year
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info(f"Created contract {contract.contract_number} for room {room.number}, tenant {tenant.name}")
    return contract


def update_contract(contract, data, documents=None):
    try:
        _apply_fields(contract, data)
        if documents:
            contract.documents = list(contract.documents or []) + list(documents)
        _check_dates(contract)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info(f"Updated contract {contract.contract_number}")
    return contract


def renew_contract(contract, new_end_date, reason=None):
    if contract.status != 'active':
        raise PreconditionFailed('Chỉ có thể gia hạn hợp đồng đang hoạt động')
    new_end = time_utils.to_date(new_end_date, 'ngày kết thúc mới')
    if new_end is None:
        raise ValidationError('Ngày kết thúc mới là bắt buộc')
    try:
        contract.renewal_history.append(ContractRenewal(
            old_end_date=contract.end_date,
            new_end_date=new_end,
            renewal_date=time_utils.now(),
            reason=reason or 'Gia hạn hợp đồng',
        ))
        contract.end_date = new_end
        contract.status = 'renewed'
        _check_dates(contract)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info(f"Renewed contract {contract.contract_number} until {new_end.isoformat()}")
    return contract


def terminate_contract(contract, reason=None):
    """Kết thúc hợp đồng, trả phòng và đánh dấu khách đã chuyển đi."""
    if contract.status != 'active':
        raise PreconditionFailed('Chỉ có thể kết thúc hợp đồng đang hoạt động')
    try:
        room = lock_room(contract.room_id)
        tenant = lock_tenant(contract.tenant_id)
        today = time_utils.today()

        contract.status = 'terminated'
        contract.termination_reason = reason
        contract.termination_date = time_utils.now()

        # Chỉ trả phòng và chuyển khách ra khi liên kết vẫn thuộc hợp đồng này
        if tenant is not None:
            if tenant.room is None:
                tenant.status = 'moved_out'
                tenant.move_out_date = today
            elif tenant.room_id == contract.room_id:
                move_tenant_out(tenant, today)
        if room is not None and room.tenant_id in (None, contract.tenant_id):
            room.tenant = None
            room.tenant_id = None
            room.status = 'available'
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info(f"Terminated contract {contract.contract_number}: {reason}")
    return contract


def delete_contract(contract):
    if contract.status == 'active':
        raise PreconditionFailed('Không thể xóa hợp đồng đang hoạt động')
    if contract.payments.count() > 0:
        raise PreconditionFailed('Không thể xóa hợp đồng có thanh toán liên quan')
    try:
        contract.is_active = False
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info(f"Soft deleted contract {contract.contract_number}")


def remove_document(contract, index):
    documents = list(contract.documents or [])
    if index < 0 or index >= len(documents):
        raise ValidationError('Index tài liệu không hợp lệ')
    removed = documents.pop(index)
    try:
        contract.documents = documents
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info(f"Removed document {removed.get('name')} from contract {contract.contract_number}")
    return removed


def find_expiring_soon(days=30):
    limit_date = time_utils.today() + timedelta(days=days)
    return Contract.query.filter(
        Contract.status == 'active',
        Contract.end_date <= limit_date,
        Contract.is_active.is_(True)
    ).order_by(Contract.end_date.asc()).all()


def find_expired():
    return Contract.query.filter(
        Contract.status == 'active',
        Contract.end_date < time_utils.today(),
        Contract.is_active.is_(True)
    ).order_by(Contract.end_date.asc()).all()


def expire_overdue_contracts():
    """Chuyển các hợp đồng active đã quá ngày kết thúc sang expired."""
    try:
        contracts = find_expired()
        for contract in contracts:
            contract.status = 'expired'
            logger.debug(f"Contract {contract.contract_number} expired on {contract.end_date}")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return len(contracts)


def duration_bucket(contract):
    months = (contract.end_date - contract.start_date).days / 30
    if months < 6:
        return 'under_6_months'
    if months < 12:
        return '6_12_months'
    if months < 24:
        return '1_2_years'
    return 'over_2_years'


def contract_stats():
    contracts = Contract.query.filter_by(is_active=True).all()
    statuses = Counter(contract.status for contract in contracts)
    limit_date = time_utils.today() + timedelta(days=30)
    expiring_soon = sum(
        1 for contract in contracts
        if contract.status == 'active' and contract.end_date <= limit_date
    )

    monthly = {}
    for contract in contracts:
        key = (contract.created_at.year, contract.created_at.month)
        entry = monthly.setdefault(key, {
            'year': key[0], 'month': key[1], 'total': 0, 'active': 0, 'expired': 0, 'terminated': 0
        })
        entry['total'] += 1
        if contract.status in ('active', 'expired', 'terminated'):
            entry[contract.status] += 1
    monthly_stats = [monthly[key] for key in sorted(monthly, reverse=True)[:12]]

    durations = Counter(duration_bucket(contract) for contract in contracts)
    duration_stats = [{'range': bucket, 'count': durations[bucket]} for bucket in DURATION_BUCKETS if durations[bucket]]

    return {
        'overview': {
            'totalContracts': len(contracts),
            'activeContracts': statuses['active'],
            'expiredContracts': statuses['expired'],
            'terminatedContracts': statuses['terminated'],
            'renewedContracts': statuses['renewed'],
            'expiringSoon': expiring_soon,
        },
        'monthlyStats': monthly_stats,
        'durationStats': duration_stats,
    }
