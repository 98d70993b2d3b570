from flask import Blueprint, request, send_file
from extensions import db
from models.payment import Payment
from services import payment_service
from services.errors import ServiceError, from_integrity_error
from utils import time_utils
from utils.responses import success, error, paginated, apply_sort, request_data
from utils.uploads import save_uploads, cleanup_files, delete_upload, IMAGE_EXTENSIONS
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from io import BytesIO
import openpyxl
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

payment_bp = Blueprint('payment', __name__)

SORT_COLUMNS = {
    'dueDate': 'due_date',
    'paidDate': 'paid_date',
    'createdAt': 'created_at',
    'paymentCode': 'payment_code',
    'totalAmount': 'total_amount',
    'status': 'status',
}

STATUS_LABELS = {
    'pending': 'Chờ thanh toán',
    'paid': 'Đã thanh toán',
    'overdue': 'Quá hạn',
    'cancelled': 'Đã hủy',
}


def build_receipts(saved):
    return [{
        'url': item['url'],
        'description': 'Hóa đơn thanh toán',
        'uploadedAt': time_utils.now().isoformat(),
    } for item in saved]


@payment_bp.route('/payments', methods=['GET'])
def get_payments():
    try:
        status = request.args.get('status')
        room_id = request.args.get('roomId', type=int)
        tenant_id = request.args.get('tenantId', type=int)
        contract_id = request.args.get('contractId', type=int)
        month = request.args.get('month', type=int)
        year = request.args.get('year', type=int)
        search = request.args.get('search', '').strip()

        query = Payment.query.filter_by(is_active=True)
        if status:
            query = query.filter(Payment.status == status)
        if room_id:
            query = query.filter(Payment.room_id == room_id)
        if tenant_id:
            query = query.filter(Payment.tenant_id == tenant_id)
        if contract_id:
            query = query.filter(Payment.contract_id == contract_id)
        if month:
            query = query.filter(Payment.month == month)
        if year:
            query = query.filter(Payment.year == year)
        if search:
            query = query.filter(
                Payment.payment_code.ilike(f'%{search}%') |
                Payment.notes.ilike(f'%{search}%')
            )
        query = apply_sort(query, Payment, SORT_COLUMNS, 'dueDate', 'desc')
        return success(**paginated(query, lambda payment: payment.to_dict()))
    except SQLAlchemyError as e:
        logger.error(f"Database error fetching payments: {str(e)}")
        return error('Lỗi khi lấy danh sách thanh toán', 500)


@payment_bp.route('/payments/overdue', methods=['GET'])
def get_overdue_payments():
    try:
        payments = payment_service.find_overdue()
        return success([payment.to_dict() for payment in payments])
    except SQLAlchemyError as e:
        logger.error(f"Database error fetching overdue payments: {str(e)}")
        return error('Lỗi khi lấy danh sách thanh toán quá hạn', 500)


@payment_bp.route('/payments/due-soon', methods=['GET'])
def get_due_soon_payments():
    days = request.args.get('days', 3, type=int)
    try:
        payments = payment_service.find_due_soon(days)
        return success([payment.to_dict() for payment in payments])
    except SQLAlchemyError as e:
        logger.error(f"Database error fetching due-soon payments: {str(e)}")
        return error('Lỗi khi lấy danh sách thanh toán sắp đến hạn', 500)


@payment_bp.route('/payments/<int:payment_id>', methods=['GET'])
def get_payment_by_id(payment_id):
    payment = payment_service.get_payment_or_404(payment_id)
    return success(payment.to_dict())


@payment_bp.route('/payments', methods=['POST'])
def create_payment():
    saved = []
    try:
        data = request_data()
        saved = save_uploads(request.files.getlist('receipts'), 'payments', IMAGE_EXTENSIONS | {'pdf'})
        payment = payment_service.create_payment(data, build_receipts(saved))
        return success(payment.to_dict(), 'Tạo thanh toán mới thành công', 201)
    except IntegrityError as e:
        cleanup_files(saved)
        raise from_integrity_error(e)
    except ServiceError:
        cleanup_files(saved)
        raise
    except SQLAlchemyError as e:
        cleanup_files(saved)
        logger.error(f"Database error creating payment: {str(e)}")
        return error('Lỗi khi tạo thanh toán mới', 500)


@payment_bp.route('/payments/<int:payment_id>', methods=['PUT'])
def update_payment(payment_id):
    payment = payment_service.get_payment_or_404(payment_id, lock=True)
    saved = []
    try:
        data = request_data()
        for key in ('status', 'paymentCode', 'roomId', 'tenantId', 'contractId', 'totalAmount'):
            data.pop(key, None)
        saved = save_uploads(request.files.getlist('receipts'), 'payments', IMAGE_EXTENSIONS | {'pdf'})
        payment = payment_service.update_payment(payment, data, build_receipts(saved))
        return success(payment.to_dict(), 'Cập nhật thanh toán thành công')
    except ServiceError:
        cleanup_files(saved)
        raise
    except SQLAlchemyError as e:
        cleanup_files(saved)
        logger.error(f"Database error updating payment {payment_id}: {str(e)}")
        return error('Lỗi khi cập nhật thanh toán', 500)


@payment_bp.route('/payments/<int:payment_id>/pay', methods=['PUT'])
def pay_payment(payment_id):
    data = request_data()
    payment = payment_service.get_payment_or_404(payment_id, lock=True)
    try:
        payment = payment_service.mark_paid(payment, data.get('paymentMethod', 'cash'), data.get('notes', ''))
    except SQLAlchemyError as e:
        logger.error(f"Database error paying payment {payment_id}: {str(e)}")
        return error('Lỗi khi thanh toán', 500)
    return success(payment.to_dict(), 'Thanh toán thành công')


@payment_bp.route('/payments/<int:payment_id>/cancel', methods=['PUT'])
def cancel_payment(payment_id):
    data = request_data()
    payment = payment_service.get_payment_or_404(payment_id, lock=True)
    try:
        payment = payment_service.cancel_payment(payment, data.get('reason'))
    except SQLAlchemyError as e:
        logger.error(f"Database error cancelling payment {payment_id}: {str(e)}")
        return error('Lỗi khi hủy thanh toán', 500)
    return success(payment.to_dict(), 'Hủy thanh toán thành công')


@payment_bp.route('/payments/<int:payment_id>', methods=['DELETE'])
def delete_payment(payment_id):
    payment = payment_service.get_payment_or_404(payment_id)
    try:
        payment_service.delete_payment(payment)
    except SQLAlchemyError as e:
        logger.error(f"Database error deleting payment {payment_id}: {str(e)}")
        return error('Lỗi khi xóa thanh toán', 500)
    return success(message='Xóa thanh toán thành công')


@payment_bp.route('/payments/<int:payment_id>/receipt/<int:receipt_index>', methods=['DELETE'])
def delete_payment_receipt(payment_id, receipt_index):
    payment = payment_service.get_payment_or_404(payment_id)
    try:
        removed = payment_service.remove_receipt(payment, receipt_index)
    except SQLAlchemyError as e:
        logger.error(f"Database error deleting receipt of payment {payment_id}: {str(e)}")
        return error('Lỗi khi xóa hóa đơn', 500)
    delete_upload(removed.get('url'))
    return success(payment.to_dict(), 'Xóa hóa đơn thành công')


# Tạo thanh toán hàng loạt cho một kỳ
@payment_bp.route('/payments/bulk-create', methods=['POST'])
def bulk_create_payments():
    data = request_data()
    try:
        result = payment_service.bulk_create(data.get('month'), data.get('year'), data.get('roomIds') or None)
    except SQLAlchemyError as e:
        logger.error(f"Database error in bulk payment creation: {str(e)}")
        return error('Lỗi khi tạo thanh toán hàng loạt', 500, error=str(e))
    result['payments'] = [payment.to_dict() for payment in result['payments']]
    return success(result, 'Tạo thanh toán hàng loạt thành công')


@payment_bp.route('/payments/stats/overview', methods=['GET'])
def get_payment_stats():
    try:
        stats = payment_service.payment_stats()
        logger.info('Fetched payment statistics')
        return success(stats)
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database error fetching payment stats: {str(e)}")
        return error('Lỗi khi lấy thống kê thanh toán', 500)


# Xuất danh sách thanh toán ra Excel
@payment_bp.route('/payments/export', methods=['GET'])
def export_payments():
    month = request.args.get('month', type=int)
    year = request.args.get('year', type=int)
    try:
        query = Payment.query.filter_by(is_active=True)
        if month:
            query = query.filter(Payment.month == month)
        if year:
            query = query.filter(Payment.year == year)
        payments = query.order_by(Payment.due_date.asc()).all()

        # Tạo workbook Excel
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Thanh toán"
        ws.append(['Mã thanh toán', 'Phòng', 'Khách thuê', 'Kỳ', 'Hạn thanh toán', 'Tiền phòng',
                   'Tiền điện', 'Tiền nước', 'Giảm giá', 'Tổng tiền', 'Trạng thái', 'Ngày thanh toán'])
        for payment in payments:
            ws.append([
                payment.payment_code,
                payment.room.number if payment.room else '',
                payment.tenant.name if payment.tenant else '',
                f'{payment.month:02d}/{payment.year}',
                payment.due_date.strftime('%d/%m/%Y'),
                float(payment.rent_amount),
                float(payment.electricity_amount),
                float(payment.water_amount),
                float(payment.discount),
                float(payment.total_amount),
                STATUS_LABELS.get(payment.status, payment.status),
                payment.paid_date.strftime('%d/%m/%Y') if payment.paid_date else '',
            ])

        output = BytesIO()
        wb.save(output)
        output.seek(0)
        suffix = f"_{year or 'all'}_{month:02d}" if month else f"_{year or 'all'}"
        logger.info(f"Exported {len(payments)} payments to Excel")
        return send_file(
            output,
            as_attachment=True,
            download_name=f"payments{suffix}.xlsx",
            mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
        )
    except SQLAlchemyError as e:
        logger.error(f"Database error exporting payments: {str(e)}")
        return error('Lỗi database', 500)
