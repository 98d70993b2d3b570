from flask import Blueprint, current_app
from extensions import db
from models.room import Room
from models.tenant import Tenant
from models.contract import Contract
from models.payment import Payment
from models.note import Note
from utils import backup, discord, qr, time_utils
from utils.responses import success, error
from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from urllib.parse import unquote
import os
import platform
import resource
import socket
import sys
import time
import urllib.error
import urllib.request
import uuid
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

health_bp = Blueprint('health', __name__)

VERSION = '1.0.0'
START_TIME = time.time()
PROBE_ERRORS = (urllib.error.URLError, socket.timeout, ValueError)


def format_bytes(size):
    if not size:
        return '0 Bytes'
    units = ['Bytes', 'KB', 'MB', 'GB']
    index = 0
    value = float(size)
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"


def uptime():
    return round(time.time() - START_TIME, 2)


def probe_url(url, method='HEAD', timeout=5):
    """Gọi thử một URL, trả về mã HTTP."""
    request = urllib.request.Request(url, method=method, headers={'User-Agent': 'RentalBackend-Health'})
    with urllib.request.urlopen(request, timeout=timeout) as response:
        return response.status


def qr_test_url():
    settings = qr.qr_settings()
    return f"{settings['baseUrl'].rstrip('/')}/{settings['bankCode']}-{settings['accountNumber']}-print.jpg"


def qr_configured():
    settings = qr.qr_settings()
    return bool(settings['bankCode'] and settings['accountNumber'] and settings['accountName'])


def check_database():
    try:
        db.session.execute(text('SELECT 1'))
        room_count = Room.query.count()
        return {
            'status': 'healthy',
            'connected': True,
            'state': 'connected',
            'dialect': db.engine.dialect.name,
            'testQuery': f'{room_count} rooms found',
        }
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database health check failed: {str(e)}")
        return {'status': 'unhealthy', 'connected': False, 'error': str(e)}


def check_discord():
    if not discord.webhook_url():
        return {'status': 'warning', 'configured': False, 'message': 'Discord webhook chưa được cấu hình'}
    try:
        info = discord.fetch_webhook_info()
    except PROBE_ERRORS as e:
        return {'status': 'unhealthy', 'configured': True, 'error': str(e)}
    return {
        'status': 'healthy',
        'configured': True,
        'webhookName': info.get('name'),
        'channelId': info.get('channel_id'),
    }


def check_qr():
    if not qr_configured():
        return {'status': 'warning', 'configured': False, 'message': 'QR payment chưa được cấu hình đầy đủ'}
    settings = qr.qr_settings()
    try:
        status = probe_url(qr_test_url())
    except PROBE_ERRORS as e:
        return {'status': 'unhealthy', 'configured': True, 'error': str(e)}
    return {
        'status': 'healthy',
        'configured': True,
        'bankCode': settings['bankCode'],
        'accountNumber': settings['accountNumber'],
        'responseStatus': status,
    }


def check_memory():
    # ru_maxrss tính bằng KB trên Linux
    max_rss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss * 1024
    return {'status': 'healthy', 'usage': {'maxRss': format_bytes(max_rss)}, 'raw': {'maxRss': max_rss}}


def check_backup():
    folder = current_app.config['BACKUP_DIR']
    if not os.path.isdir(folder):
        return {'status': 'warning', 'message': 'Thư mục backup chưa tồn tại'}
    try:
        result = backup.list_backups()
    except OSError as e:
        return {'status': 'unhealthy', 'error': str(e)}
    return {
        'status': 'healthy',
        'directory': folder,
        'totalBackups': result['total'],
        'totalSize': format_bytes(result['totalSize']),
        'lastBackup': result['backups'][0]['fileName'] if result['backups'] else None,
    }


def check_timezone():
    now = time_utils.local_now()
    return {
        'status': 'healthy',
        'timezone': time_utils.get_timezone(),
        'currentTime': now.format('DD/MM/YYYY HH:mm:ss'),
        'utcOffset': int(now.utcoffset().total_seconds() // 60),
    }


def overall_status(checks):
    statuses = [check['status'] for check in checks.values()]
    if 'unhealthy' in statuses:
        return 'unhealthy'
    if 'warning' in statuses:
        return 'warning'
    return 'healthy'


# Health check tổng quát
@health_bp.route('/health/', methods=['GET'])
@health_bp.route('/health', methods=['GET'])
def health_check():
    checks = {
        'database': check_database(),
        'discord': check_discord(),
        'qr': check_qr(),
        'memory': check_memory(),
        'backup': check_backup(),
        'timezone': check_timezone(),
    }
    status = overall_status(checks)
    logger.info(f"Health check: {status}")
    return success({
        'status': status,
        'timestamp': time_utils.local_now().isoformat(),
        'uptime': uptime(),
        'version': VERSION,
        'checks': checks,
    }, status=503 if status == 'unhealthy' else 200)


@health_bp.route('/health/db', methods=['GET'])
def health_db():
    result = check_database()
    if result['status'] != 'healthy':
        return error('Lỗi khi kiểm tra database', 500, error=result.get('error'))
    try:
        result['tables'] = inspect(db.engine).get_table_names()
        result['documentCounts'] = {
            'rooms': Room.query.count(),
            'tenants': Tenant.query.count(),
            'contracts': Contract.query.count(),
            'payments': Payment.query.count(),
            'notes': Note.query.count(),
        }
        # Ghi thử trong savepoint rồi hoàn tác
        savepoint = db.session.begin_nested()
        db.session.add(Room(number=f'T{uuid.uuid4().hex[:8]}', name='Test Room', price=1000, area=1, floor=1,
                            is_active=False))
        db.session.flush()
        savepoint.rollback()
        result['writeTest'] = 'passed'
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database health check failed: {str(e)}")
        return error('Lỗi khi kiểm tra database', 500, error=str(e))
    result['timestamp'] = time_utils.local_now().isoformat()
    logger.info(f"Database health check: {result['status']}")
    return success(result)


@health_bp.route('/health/discord', methods=['GET'])
def health_discord():
    result = check_discord()
    if result['status'] == 'unhealthy':
        return error('Lỗi khi kiểm tra Discord webhook', 500, error=result.get('error'))
    result['timestamp'] = time_utils.local_now().isoformat()
    return success(result)


@health_bp.route('/health/qr', methods=['GET'])
def health_qr():
    settings = qr.qr_settings()
    if not qr_configured():
        return success({
            'status': 'warning',
            'configured': False,
            'message': 'QR payment chưa được cấu hình đầy đủ',
            'config': {
                'bankCode': bool(settings['bankCode']),
                'accountNumber': bool(settings['accountNumber']),
                'accountName': bool(settings['accountName']),
            },
        })
    result = check_qr()
    if result['status'] == 'unhealthy':
        return error('Lỗi khi kiểm tra QR service', 500, error=result.get('error'))
    return success({
        'status': 'healthy',
        'configured': True,
        'config': {
            'bankCode': settings['bankCode'],
            'accountNumber': settings['accountNumber'],
            'accountName': unquote(settings['accountName']),
            'baseUrl': settings['baseUrl'],
        },
        'testUrl': qr_test_url(),
        'responseStatus': result['responseStatus'],
        'timestamp': time_utils.local_now().isoformat(),
    })


@health_bp.route('/health/system', methods=['GET'])
def health_system():
    memory = check_memory()
    times = os.times()
    return success({
        'status': 'healthy',
        'uptime': uptime(),
        'version': sys.version.split()[0],
        'platform': sys.platform,
        'arch': platform.machine(),
        'memory': memory['usage'],
        'cpu': {'user': times.user, 'system': times.system},
        'env': {
            'flaskEnv': os.getenv('FLASK_ENV'),
            'timezone': time_utils.get_timezone(),
            'port': int(os.getenv('PORT', 5000)),
        },
        'timestamp': time_utils.local_now().isoformat(),
    })
