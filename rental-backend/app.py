import os
import logging
from flask import Flask, jsonify, send_from_directory, request
from extensions import db, migrate, limiter
from config import Config
from dotenv import load_dotenv
from pathlib import Path
from flask_swagger_ui import get_swaggerui_blueprint
from flask_cors import CORS
from sqlalchemy.exc import IntegrityError

# Load biến môi trường
dotenv_path = Path(__file__).resolve().parent / '.env'
load_dotenv(dotenv_path)

# Cấu hình logging
logging.basicConfig(
    filename='app.log',
    level=logging.INFO,
    format='%(asctime)s %(levelname)s: %(message)s',
    encoding='utf-8'
)
logger = logging.getLogger(__name__)

# Import models (đăng ký bảng và hook before_save)
import models.hooks  # noqa: F401
from models.room import Room  # noqa: F401
from models.tenant import Tenant  # noqa: F401
from models.contract import Contract, ContractRenewal  # noqa: F401
from models.payment import Payment, PaymentFee, PaymentStatusHistory  # noqa: F401
from models.note import Note, NoteTag  # noqa: F401
from models.sequence_counter import SequenceCounter  # noqa: F401

# Import controllers
from controllers.room_controller import room_bp
from controllers.tenant_controller import tenant_bp
from controllers.contract_controller import contract_bp
from controllers.payment_controller import payment_bp
from controllers.note_controller import note_bp
from controllers.discord_controller import discord_bp
from controllers.qr_controller import qr_bp
from controllers.backup_controller import backup_bp
from controllers.health_controller import health_bp
from middleware.time_access import init_time_access
from services.errors import ServiceError, from_integrity_error
from utils import time_utils

API_VERSION = '1.0.0'

# Cấu hình Swagger UI
SWAGGER_URL = '/docs'
API_URL = '/static/swagger.json'


def register_error_handlers(app):
    @app.errorhandler(ServiceError)
    def handle_service_error(e):
        db.session.rollback()
        if e.status_code >= 500:
            logger.error(f"{type(e).__name__}: {e.message}")
        else:
            logger.warning(f"{type(e).__name__} on {request.method} {request.path}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(e):
        db.session.rollback()
        converted = from_integrity_error(e)
        logger.warning(f"Integrity error on {request.path}: {str(e.orig)}")
        return jsonify(converted.to_dict()), converted.status_code

    @app.errorhandler(404)
    def not_found(error):
        logger.error("404 Error: %s", request.path)
        return jsonify({'success': False, 'message': 'Endpoint không tồn tại', 'path': request.path}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'success': False, 'message': 'Phương thức không được hỗ trợ', 'path': request.path}), 405

    @app.errorhandler(413)
    def too_large(error):
        return jsonify({'success': False, 'message': 'Dung lượng request vượt quá giới hạn 10MB'}), 413

    @app.errorhandler(429)
    def too_many_requests(error):
        return jsonify({'success': False, 'message': 'Quá nhiều yêu cầu từ IP này, vui lòng thử lại sau.'}), 429

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        logger.error("500 Error: %s", str(error))
        body = {'success': False, 'message': 'Lỗi server nội bộ'}
        if app.debug:
            body['error'] = str(getattr(error, 'original_exception', error))
        return jsonify(body), 500


def register_routes(app):
    @app.route('/health')
    @limiter.exempt
    def server_health():
        return jsonify({
            'success': True,
            'message': 'Server đang hoạt động',
            'timestamp': time_utils.local_now().isoformat(),
            'timezone': time_utils.get_timezone(),
        })

    @app.route('/api')
    def api_index():
        return jsonify({
            'success': True,
            'message': 'API Quản lý phòng trọ',
            'version': API_VERSION,
            'endpoints': {
                'rooms': '/api/rooms',
                'tenants': '/api/tenants',
                'contracts': '/api/contracts',
                'payments': '/api/payments',
                'notes': '/api/notes',
                'discord': '/api/discord',
                'qr': '/api/qr',
                'backup': '/api/backup',
                'health': '/api/health',
            },
            'documentation': SWAGGER_URL,
        })

    @app.route('/uploads/<path:filename>')
    @limiter.exempt
    def uploaded_file(filename):
        return send_from_directory(app.config['UPLOAD_BASE'], filename)


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config())
    if overrides:
        app.config.update(overrides)
    app.json.ensure_ascii = app.config['JSON_AS_ASCII']

    # Cấu hình CORS
    CORS(app, resources={r"/api/*": {
        "origins": app.config['CORS_ORIGINS'],
        "methods": ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        "allow_headers": ["Content-Type", "Authorization", "X-Client-Timezone"],
        "expose_headers": ["X-Server-Timezone", "X-Server-Time"],
        "supports_credentials": False
    }})

    swaggerui_blueprint = get_swaggerui_blueprint(
        SWAGGER_URL,
        API_URL,
        config={'app_name': "Rental Management API"}
    )
    app.register_blueprint(swaggerui_blueprint, url_prefix=SWAGGER_URL)

    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    # Thư mục upload theo từng loại đối tượng
    for entity in ('rooms', 'tenants', 'contracts', 'payments', 'notes'):
        os.makedirs(os.path.join(app.config['UPLOAD_BASE'], entity), exist_ok=True)

    init_time_access(app)

    # Register blueprints
    app.register_blueprint(room_bp, url_prefix='/api')
    app.register_blueprint(tenant_bp, url_prefix='/api')
    app.register_blueprint(contract_bp, url_prefix='/api')
    app.register_blueprint(payment_bp, url_prefix='/api')
    app.register_blueprint(note_bp, url_prefix='/api')
    app.register_blueprint(discord_bp, url_prefix='/api')
    app.register_blueprint(qr_bp, url_prefix='/api')
    app.register_blueprint(backup_bp, url_prefix='/api')
    app.register_blueprint(health_bp, url_prefix='/api')

    register_routes(app)
    register_error_handlers(app)

    if app.config.get('SCHEDULER_ENABLED') and not app.config.get('TESTING'):
        from scheduler import init_scheduler
        init_scheduler(app)

    logger.info(f"Timezone: {app.config['TIMEZONE']}")
    logger.info(f"Access block window: {app.config['ACCESS_BLOCK_START_HOUR']}:00 - "
                f"{app.config['ACCESS_BLOCK_END_HOUR']}:00")
    return app


if __name__ == '__main__':
    app = create_app()
    port = int(os.getenv('PORT', 5000))
    if os.getenv('FLASK_ENV') == 'development':
        app.run(debug=True, host='127.0.0.1', port=port)
    else:
        app.run(host='0.0.0.0', port=port)
