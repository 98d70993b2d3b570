import re
from decimal import Decimal, InvalidOperation

from flask import current_app, has_app_context
from sqlalchemy import event
from sqlalchemy.orm import Session

from services.errors import ValidationError

PHONE_PATTERN = re.compile(r'^[0-9]{10,11}$')
ID_CARD_PATTERN = re.compile(r'^[0-9]{9,12}$')
EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$')


@event.listens_for(Session, 'before_flush')
def run_before_save(session, flush_context, instances):
    """Gọi before_save() cho mọi bản ghi mới hoặc bị sửa trước khi ghi xuống DB."""
    for obj in list(session.new) + list(session.dirty):
        hook = getattr(obj, 'before_save', None)
        if callable(hook):
            hook()


def require_fields(obj, messages):
    errors = []
    for field, message in messages.items():
        value = getattr(obj, field, None)
        if value is None or (isinstance(value, str) and not value.strip()):
            errors.append(message)
    if errors:
        raise ValidationError(errors[0], errors)


def to_money(value, message):
    if value is None or value == '':
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(message)
    if amount < 0:
        raise ValidationError(message)
    return amount


def to_float(value, message):
    if value is None or value == '':
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(message)
    if number < 0:
        raise ValidationError(message)
    return number


def check_choice(value, choices, message):
    if value is not None and value not in choices:
        raise ValidationError(message)
    return value


def config_default(key, fallback):
    if has_app_context():
        return current_app.config.get(key, fallback)
    return fallback


def as_float(value):
    return float(value) if value is not None else 0.0
