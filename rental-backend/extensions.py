import os
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

db = SQLAlchemy()
migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[os.getenv('RATELIMIT_DEFAULT', '100 per 15 minutes')],
    storage_uri=os.getenv('RATELIMIT_STORAGE_URI', 'memory://')
)
