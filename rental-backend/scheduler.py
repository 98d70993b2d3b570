from apscheduler.schedulers.background import BackgroundScheduler
from extensions import db
from services import contract_service, payment_service
from utils import backup
import logging

# Thiết lập logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def expire_contracts_job(app):
    """Chuyển các hợp đồng active đã quá ngày kết thúc sang expired."""
    logger.info("Starting expire_contracts_job")
    with app.app_context():
        try:
            count = contract_service.expire_overdue_contracts()
            logger.info(f"Expired {count} contracts")
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error in expire_contracts_job: {str(e)}", exc_info=True)


def mark_overdue_payments_job(app):
    """Đánh dấu quá hạn cho các thanh toán pending đã qua hạn."""
    logger.info("Starting mark_overdue_payments_job")
    with app.app_context():
        try:
            count = payment_service.mark_overdue_payments()
            logger.info(f"Marked {count} payments as overdue")
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error in mark_overdue_payments_job: {str(e)}", exc_info=True)


def daily_backup_job(app):
    logger.info("Starting daily_backup_job")
    with app.app_context():
        try:
            result = backup.create_backup(True, 'Backup tự động')
            logger.info(f"Daily backup created: {result['fileName']}")
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error in daily_backup_job: {str(e)}", exc_info=True)


def cleanup_backups_job(app):
    logger.info("Starting cleanup_backups_job")
    with app.app_context():
        try:
            result = backup.cleanup_backups()
            logger.info(f"Removed {result['deletedCount']} old backups")
        except OSError as e:
            logger.error(f"Error in cleanup_backups_job: {str(e)}", exc_info=True)


def init_scheduler(app):
    """Khởi tạo scheduler với các tác vụ theo lịch trình."""
    scheduler = BackgroundScheduler(timezone=app.config['TIMEZONE'])
    scheduler.add_job(
        lambda: expire_contracts_job(app),
        'interval',
        hours=2
    )
    scheduler.add_job(
        lambda: mark_overdue_payments_job(app),
        'interval',
        hours=1
    )
    scheduler.add_job(
        lambda: daily_backup_job(app),
        'cron',
        hour=app.config['BACKUP_HOUR'],
        minute=0
    )
    scheduler.add_job(
        lambda: cleanup_backups_job(app),
        'cron',
        hour=app.config['BACKUP_HOUR'],
        minute=30
    )
    scheduler.start()
    logger.info("Scheduler initialized for contract, payment and backup tasks.")
    return scheduler
