from flask import current_app, g, request
from services.errors import MaintenanceWindow
from utils import time_utils
import logging

logger = logging.getLogger(__name__)

EXEMPT_PATHS = ('/health', '/api/health')
WRITE_METHODS = ('POST', 'PUT', 'PATCH', 'DELETE')


def is_exempt(path):
    return any(path == prefix or path.startswith(prefix + '/') for prefix in EXEMPT_PATHS)


def maintenance_payload(now, block_start, block_end, timezone):
    next_access = now.start_of('day').add(hours=block_end)
    return {
        'success': False,
        'message': 'Hệ thống đang bảo trì',
        'details': f'Hệ thống tạm khóa từ {block_start}:00 đến {block_end}:00 (GMT+7) hằng ngày để bảo trì.',
        'maintenanceWindow': {
            'start': f'{block_start}:00',
            'end': f'{block_end}:00',
            'timezone': timezone,
        },
        'currentTime': now.format(time_utils.DISPLAY_FORMAT),
        'nextAccessTime': next_access.format(time_utils.DISPLAY_FORMAT),
    }


def check_access_time():
    """Chặn mọi request trong khung giờ bảo trì [start, end) theo giờ địa phương."""
    config = current_app.config
    if not config.get('ACCESS_CONTROL_ENABLED', True):
        return None
    now = time_utils.local_now()
    block_start = config['ACCESS_BLOCK_START_HOUR']
    block_end = config['ACCESS_BLOCK_END_HOUR']
    if block_start <= now.hour < block_end:
        logger.warning(f"Access denied at {now.format(time_utils.DISPLAY_FORMAT)} - maintenance window")
        raise MaintenanceWindow(maintenance_payload(now, block_start, block_end, time_utils.get_timezone()))
    return None


def check_backup_time():
    """Trong khung giờ backup (02:00-02:30) chỉ cho phép đọc."""
    config = current_app.config
    if not config.get('BACKUP_WINDOW_ENABLED', True) or is_exempt(request.path):
        return None
    now = time_utils.local_now()
    start = config['BACKUP_WINDOW_START']
    end = config['BACKUP_WINDOW_END']
    if start <= (now.hour, now.minute) <= end:
        logger.warning(f"Request during backup window: {now.format(time_utils.DISPLAY_FORMAT)}")
        if request.method in WRITE_METHODS:
            raise MaintenanceWindow({
                'success': False,
                'message': 'Hệ thống đang backup dữ liệu',
                'details': f'Chỉ cho phép truy cập đọc dữ liệu trong thời gian backup '
                           f'({start[0]}:{start[1]:02d}-{end[0]}:{end[1]:02d} AM).',
                'backupWindow': {
                    'start': f'{start[0]}:{start[1]:02d}',
                    'end': f'{end[0]}:{end[1]:02d}',
                    'timezone': time_utils.get_timezone(),
                },
                'currentTime': now.format(time_utils.DISPLAY_FORMAT),
            })
    return None


def check_holiday():
    now = time_utils.local_now()
    g.is_holiday = now.format('DD-MM') in current_app.config.get('HOLIDAYS', [])
    if g.is_holiday:
        logger.info(f"Access on public holiday: {now.format('DD/MM/YYYY')}")


def log_access_time():
    now = time_utils.local_now()
    user_agent = request.headers.get('User-Agent', 'Unknown')
    g.access_time = now.naive()
    g.vietnam_time = now.format(time_utils.DISPLAY_FORMAT)
    logger.info(f"[ACCESS] {request.method} {request.path} - IP: {request.remote_addr} - "
                f"Time: {g.vietnam_time} - User-Agent: {user_agent}")


def check_client_timezone(response):
    client_timezone = request.headers.get('X-Client-Timezone')
    if client_timezone:
        server_timezone = time_utils.get_timezone()
        logger.info(f"Client timezone: {client_timezone} - Server timezone: {server_timezone}")
        response.headers['X-Server-Timezone'] = server_timezone
        response.headers['X-Server-Time'] = time_utils.local_now().isoformat()
    return response


def init_time_access(app):
    app.before_request(log_access_time)
    app.before_request(check_access_time)
    app.before_request(check_backup_time)
    app.before_request(check_holiday)
    app.after_request(check_client_timezone)
