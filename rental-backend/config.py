import logging
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent
logger = logging.getLogger(__name__)


def _env_bool(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    def __init__(self):
        # Database settings
        self.SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL')
        if not self.SQLALCHEMY_DATABASE_URI:
            raise ValueError("DATABASE_URL is not set in environment variables")
        self.SQLALCHEMY_TRACK_MODIFICATIONS = False

        # Flask settings
        self.SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key')
        if self.SECRET_KEY == 'dev-secret-key':
            logger.warning("SECRET_KEY is not set, using development default")
        self.JSON_AS_ASCII = False

        # File upload settings
        self.MAX_CONTENT_LENGTH = 10 * 1024 * 1024  # 10MB
        self.UPLOAD_BASE = os.getenv('UPLOAD_BASE', str(BASE_DIR / 'uploads'))
        self.LOG_DIR = os.getenv('LOG_DIR', str(BASE_DIR / 'logs'))

        # Múi giờ và khóa truy cập
        self.TIMEZONE = os.getenv('TIMEZONE', 'Asia/Ho_Chi_Minh')
        self.ACCESS_CONTROL_ENABLED = _env_bool('ACCESS_CONTROL_ENABLED', True)
        self.ACCESS_BLOCK_START_HOUR = int(os.getenv('ACCESS_BLOCK_START_HOUR', 2))
        self.ACCESS_BLOCK_END_HOUR = int(os.getenv('ACCESS_BLOCK_END_HOUR', 5))
        if not 0 <= self.ACCESS_BLOCK_START_HOUR <= self.ACCESS_BLOCK_END_HOUR <= 24:
            raise ValueError("ACCESS_BLOCK_START_HOUR/ACCESS_BLOCK_END_HOUR must satisfy 0 <= start <= end <= 24")
        self.BACKUP_WINDOW_ENABLED = _env_bool('BACKUP_WINDOW_ENABLED', True)
        self.BACKUP_WINDOW_START = (2, 0)
        self.BACKUP_WINDOW_END = (2, 30)
        self.HOLIDAYS = ['01-01', '30-04', '01-05', '02-09']

        # Giá mặc định
        self.DEFAULT_ELECTRICITY_PRICE = int(os.getenv('DEFAULT_ELECTRICITY_PRICE', 3000))
        self.DEFAULT_WATER_PRICE = int(os.getenv('DEFAULT_WATER_PRICE', 5000))
        self.ROOM_BASE_PRICE = int(os.getenv('ROOM_BASE_PRICE', 800000))

        # VietQR settings
        self.QR_BANK_CODE = os.getenv('QR_BANK_CODE', 'bidv')
        self.QR_ACCOUNT_NUMBER = os.getenv('QR_ACCOUNT_NUMBER', '3950630937')
        self.QR_ACCOUNT_NAME = os.getenv('QR_ACCOUNT_NAME', 'Pham%20Thi%20Luyen')
        self.QR_BASE_URL = os.getenv('QR_BASE_URL', 'https://img.vietqr.io/image')

        # Discord settings
        self.DISCORD_WEBHOOK_URL = os.getenv('DISCORD_WEBHOOK_URL')
        self.DISCORD_TIMEOUT = int(os.getenv('DISCORD_TIMEOUT', 10))

        # Backup settings
        self.BACKUP_DIR = os.getenv('BACKUP_DIR', str(BASE_DIR / 'backups'))
        self.BACKUP_RETENTION_DAYS = int(os.getenv('BACKUP_RETENTION_DAYS', 30))
        self.BACKUP_HOUR = int(os.getenv('BACKUP_HOUR', 2))

        # Rate limiting
        self.RATELIMIT_ENABLED = _env_bool('RATELIMIT_ENABLED', True)

        # Scheduler
        self.SCHEDULER_ENABLED = _env_bool('SCHEDULER_ENABLED', True)

        # CORS
        self.CORS_ORIGINS = os.getenv('FRONTEND_URL', '*')
