"""Sao lưu dữ liệu ra file zip trong BACKUP_DIR.

Mỗi bản backup gồm data.json (các bản ghi còn hoạt động), uploads/, logs/
và README.md mô tả cách khôi phục.
"""
import json
import logging
import os
import re
import zipfile
from datetime import datetime, timedelta

from flask import current_app

from models.room import Room
from models.tenant import Tenant
from models.contract import Contract
from models.payment import Payment
from models.note import Note
from services.errors import NotFound, ValidationError
from utils import time_utils

logger = logging.getLogger(__name__)

BACKUP_VERSION = '1.0.0'
BACKUP_NAME_PATTERN = re.compile(r'^backup_[A-Za-z0-9_\-]+\.zip$')
TIMESTAMP_PATTERN = re.compile(r'backup_(\d{8}_\d{6})\.zip')

README_TEMPLATE = """# Backup dữ liệu hệ thống quản lý phòng trọ

## Thông tin backup
- Thời gian: {created}
- Mô tả: {description}
- Phiên bản: {version}

## Thống kê dữ liệu
- Phòng: {rooms}
- Khách thuê: {tenants}
- Hợp đồng: {contracts}
- Thanh toán: {payments}
- Ghi chú: {notes}

## Cấu trúc file
- data.json: Dữ liệu database
- uploads/: File tải lên (hình ảnh, tài liệu)
- logs/: File log hệ thống

## Cách khôi phục
1. Giải nén file backup
2. Import dữ liệu từ data.json
3. Khôi phục file uploads và logs
"""


def backup_dir():
    folder = current_app.config['BACKUP_DIR']
    os.makedirs(folder, exist_ok=True)
    return folder


def is_backup_name(file_name):
    return bool(BACKUP_NAME_PATTERN.match(file_name or ''))


def resolve_backup(file_name):
    """Đường dẫn file backup hợp lệ; tên sai định dạng hoặc không tồn tại thì báo lỗi."""
    if not is_backup_name(file_name):
        raise ValidationError('File không hợp lệ')
    path = os.path.join(backup_dir(), file_name)
    if not os.path.isfile(path):
        raise NotFound('File backup không tồn tại')
    return path


def collect_data(description=''):
    rooms = Room.query.filter_by(is_active=True).all()
    tenants = Tenant.query.filter_by(is_active=True).all()
    contracts = Contract.query.filter_by(is_active=True).all()
    payments = Payment.query.filter_by(is_active=True).all()
    notes = Note.query.filter_by(is_active=True).all()
    return {
        'metadata': {
            'createdAt': time_utils.local_now().isoformat(),
            'version': BACKUP_VERSION,
            'description': description or 'Backup tự động',
            'stats': {
                'rooms': len(rooms),
                'tenants': len(tenants),
                'contracts': len(contracts),
                'payments': len(payments),
                'notes': len(notes),
            },
        },
        'rooms': [room.to_dict() for room in rooms],
        'tenants': [tenant.to_dict() for tenant in tenants],
        'contracts': [contract.to_dict() for contract in contracts],
        'payments': [payment.to_dict() for payment in payments],
        'notes': [note.to_dict() for note in notes],
    }


def _add_directory(archive, folder, prefix):
    count = 0
    for root, _, files in os.walk(folder):
        for name in files:
            path = os.path.join(root, name)
            arcname = os.path.join(prefix, os.path.relpath(path, folder)).replace(os.sep, '/')
            archive.write(path, arcname)
            count += 1
    return count


def create_backup(include_files=True, description=''):
    timestamp = time_utils.local_now().format('YYYYMMDD_HHmmss')
    file_name = f'backup_{timestamp}.zip'
    path = os.path.join(backup_dir(), file_name)

    logger.info('Starting data backup...')
    data = collect_data(description)
    stats = data['metadata']['stats']

    try:
        with zipfile.ZipFile(path, 'w', compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
            archive.writestr('data.json', json.dumps(data, ensure_ascii=False, indent=2, default=str))
            if include_files:
                uploads = current_app.config.get('UPLOAD_BASE')
                if uploads and os.path.isdir(uploads):
                    logger.info(f"Backed up {_add_directory(archive, uploads, 'uploads')} upload files")
                logs = current_app.config.get('LOG_DIR')
                if logs and os.path.isdir(logs):
                    logger.info(f"Backed up {_add_directory(archive, logs, 'logs')} log files")
            archive.writestr('README.md', README_TEMPLATE.format(
                created=time_utils.now().strftime('%d/%m/%Y %H:%M:%S'),
                description=description or 'Backup tự động',
                version=BACKUP_VERSION,
                **stats
            ))
    except OSError:
        if os.path.exists(path):
            os.remove(path)
        raise

    file_size = os.path.getsize(path)
    logger.info(f"Backup completed: {file_name} ({file_size} bytes)")
    return {
        'fileName': file_name,
        'filePath': path,
        'fileSize': file_size,
        'createdAt': time_utils.local_now().isoformat(),
        'stats': stats,
    }


def _file_info(file_name):
    path = os.path.join(backup_dir(), file_name)
    stat = os.stat(path)
    match = TIMESTAMP_PATTERN.match(file_name)
    return {
        'fileName': file_name,
        'filePath': path,
        'fileSize': stat.st_size,
        'createdAt': datetime.fromtimestamp(stat.st_ctime).isoformat(),
        'modifiedAt': datetime.fromtimestamp(stat.st_mtime).isoformat(),
        'timestamp': match.group(1) if match else None,
        '_mtime': stat.st_mtime,
    }


def list_backups():
    backups = [_file_info(name) for name in os.listdir(backup_dir()) if is_backup_name(name)]
    backups.sort(key=lambda item: item['_mtime'], reverse=True)
    for item in backups:
        item.pop('_mtime')
    return {
        'backups': backups,
        'total': len(backups),
        'totalSize': sum(item['fileSize'] for item in backups),
    }


def delete_backup(file_name):
    path = resolve_backup(file_name)
    os.remove(path)
    logger.info(f"Deleted backup: {file_name}")


def cleanup_backups(retention_days=None):
    """Xóa các bản backup cũ hơn retention_days ngày (theo thời gian sửa file)."""
    if retention_days is None:
        retention_days = current_app.config['BACKUP_RETENTION_DAYS']
    retention_days = int(retention_days)
    cutoff = datetime.now() - timedelta(days=retention_days)

    deleted_count = 0
    deleted_size = 0
    folder = backup_dir()
    for name in os.listdir(folder):
        if not is_backup_name(name):
            continue
        path = os.path.join(folder, name)
        stat = os.stat(path)
        if datetime.fromtimestamp(stat.st_mtime) < cutoff:
            deleted_size += stat.st_size
            os.remove(path)
            deleted_count += 1
            logger.info(f"Deleted old backup: {name}")

    logger.info(f"Backup cleanup: removed {deleted_count} files ({deleted_size} bytes)")
    return {
        'deletedCount': deleted_count,
        'deletedSize': deleted_size,
        'retentionDays': retention_days,
        'cutoffDate': cutoff.isoformat(),
    }


def backup_info(file_name):
    resolve_backup(file_name)
    info = _file_info(file_name)
    info.pop('_mtime')
    info.pop('filePath')
    if info['timestamp']:
        parsed = datetime.strptime(info['timestamp'], '%Y%m%d_%H%M%S')
        info['timestamp'] = parsed.strftime('%d/%m/%Y %H:%M:%S')
    info['isValid'] = True
    return info


def read_backup_data(file_name):
    path = resolve_backup(file_name)
    with zipfile.ZipFile(path) as archive:
        return json.loads(archive.read('data.json').decode('utf-8'))


def backup_stats():
    folder = backup_dir()
    backups = [_file_info(name) for name in os.listdir(folder) if is_backup_name(name)]
    total_size = sum(item['fileSize'] for item in backups)
    oldest = min(backups, key=lambda item: item['_mtime']) if backups else None
    newest = max(backups, key=lambda item: item['_mtime']) if backups else None
    return {
        'totalBackups': len(backups),
        'totalSize': total_size,
        'averageSize': round(total_size / len(backups)) if backups else 0,
        'oldestBackup': {'fileName': oldest['fileName'], 'createdAt': oldest['createdAt']} if oldest else None,
        'newestBackup': {'fileName': newest['fileName'], 'createdAt': newest['createdAt']} if newest else None,
        'backupDirectory': folder,
        'retentionDays': current_app.config['BACKUP_RETENTION_DAYS'],
        'lastCleanup': datetime.fromtimestamp(os.stat(folder).st_mtime).isoformat(),
    }
