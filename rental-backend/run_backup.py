import argparse
import logging

from app import create_app
from utils.backup import create_backup, cleanup_backups, list_backups

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def run_backup(description='', include_files=True, cleanup=False, retention_days=None):
    app = create_app({'SCHEDULER_ENABLED': False})
    with app.app_context():
        logger.info("Running manual backup")
        try:
            result = create_backup(include_files, description)
            print(f"Backup created: {result['fileName']} ({result['fileSize']} bytes)")
            logger.info(f"Backup created: {result['fileName']}")
            if cleanup:
                cleaned = cleanup_backups(retention_days)
                print(f"Removed {cleaned['deletedCount']} backups older than {cleaned['retentionDays']} days")
            return result
        except OSError as e:
            print(f"Error running backup: {str(e)}")
            logger.error(f"Error running backup: {str(e)}")
            raise


def show_backups():
    app = create_app({'SCHEDULER_ENABLED': False})
    with app.app_context():
        result = list_backups()
        for item in result['backups']:
            print(f"{item['fileName']}\t{item['fileSize']} bytes\t{item['modifiedAt']}")
        print(f"Total: {result['total']} backups, {result['totalSize']} bytes")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create or list data backups")
    parser.add_argument('--description', default='', help="Backup description")
    parser.add_argument('--no-files', action='store_true', help="Skip uploads and logs")
    parser.add_argument('--cleanup', action='store_true', help="Remove old backups after creating a new one")
    parser.add_argument('--retention-days', type=int, help="Retention for --cleanup (default: BACKUP_RETENTION_DAYS)")
    parser.add_argument('--list', action='store_true', help="List existing backups and exit")
    args = parser.parse_args()

    if args.list:
        show_backups()
    else:
        run_backup(args.description, not args.no_files, args.cleanup, args.retention_days)
