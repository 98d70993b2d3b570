from flask import Blueprint, send_file
from utils import backup
from utils.responses import success, error, request_data
from sqlalchemy.exc import SQLAlchemyError
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

backup_bp = Blueprint('backup', __name__)


# Tạo backup dữ liệu
@backup_bp.route('/backup/create', methods=['POST'])
def create_backup():
    data = request_data()
    include_files = data.get('includeFiles', True)
    if isinstance(include_files, str):
        include_files = include_files.strip().lower() != 'false'
    try:
        result = backup.create_backup(bool(include_files), data.get('description', ''))
    except (OSError, SQLAlchemyError) as e:
        logger.error(f"Error creating backup: {str(e)}")
        return error('Lỗi khi tạo backup', 500, error=str(e))
    return success(result, 'Tạo backup thành công')


@backup_bp.route('/backup/list', methods=['GET'])
def list_backups():
    try:
        result = backup.list_backups()
    except OSError as e:
        logger.error(f"Error listing backups: {str(e)}")
        return error('Lỗi khi lấy danh sách backup', 500, error=str(e))
    logger.info(f"Found {result['total']} backups")
    return success(result)


@backup_bp.route('/backup/download/<file_name>', methods=['GET'])
def download_backup(file_name):
    path = backup.resolve_backup(file_name)
    logger.info(f"Download backup: {file_name}")
    return send_file(path, as_attachment=True, download_name=file_name, mimetype='application/zip')


@backup_bp.route('/backup/<file_name>', methods=['DELETE'])
def delete_backup(file_name):
    try:
        backup.delete_backup(file_name)
    except OSError as e:
        logger.error(f"Error deleting backup {file_name}: {str(e)}")
        return error('Lỗi khi xóa backup', 500, error=str(e))
    return success(message='Xóa backup thành công')


# Dọn dẹp backup cũ
@backup_bp.route('/backup/cleanup', methods=['POST'])
def cleanup_backups():
    data = request_data()
    try:
        result = backup.cleanup_backups(data.get('retentionDays'))
    except (OSError, ValueError) as e:
        logger.error(f"Error cleaning up backups: {str(e)}")
        return error('Lỗi khi dọn dẹp backup', 500, error=str(e))
    return success(result, 'Dọn dẹp backup thành công')


@backup_bp.route('/backup/info/<file_name>', methods=['GET'])
def backup_info(file_name):
    return success(backup.backup_info(file_name))


@backup_bp.route('/backup/stats', methods=['GET'])
def backup_stats():
    try:
        return success(backup.backup_stats())
    except OSError as e:
        logger.error(f"Error fetching backup stats: {str(e)}")
        return error('Lỗi khi lấy thống kê backup', 500, error=str(e))
