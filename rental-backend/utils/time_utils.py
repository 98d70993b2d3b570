"""Clock helpers pinned to the server timezone.

Every business rule that compares against "now" goes through ``now()`` and
``today()`` so a single place decides the timezone (and tests can pin it).
"""
import math
from datetime import datetime, date, time

import pendulum
from dateutil.parser import parse as parse_date
from flask import current_app, has_app_context

DEFAULT_TIMEZONE = 'Asia/Ho_Chi_Minh'
DISPLAY_FORMAT = 'HH:mm:ss DD/MM/YYYY'


def get_timezone():
    if has_app_context():
        return current_app.config.get('TIMEZONE', DEFAULT_TIMEZONE)
    return DEFAULT_TIMEZONE


def local_now():
    """Aware pendulum datetime in the server timezone."""
    return pendulum.now(get_timezone())


def now():
    """Naive local datetime, the form stored in the database."""
    return local_now().naive()


def today():
    return now().date()


def start_of_day(value):
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def days_between_ceil(later, earlier):
    """Ceiling of the number of days between two datetimes/dates."""
    delta = start_of_day(later) - start_of_day(earlier)
    return math.ceil(delta.total_seconds() / 86400)


def to_date(value, field_name='date'):
    """Chuyển chuỗi/datetime sang date; None giữ nguyên."""
    from services.errors import ValidationError

    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return parse_date(str(value)).date()
    except (ValueError, OverflowError):
        raise ValidationError(f'Định dạng {field_name} không hợp lệ (YYYY-MM-DD)')


def to_datetime(value, field_name='date'):
    from services.errors import ValidationError

    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return start_of_day(value)
    try:
        parsed = parse_date(str(value))
    except (ValueError, OverflowError):
        raise ValidationError(f'Định dạng {field_name} không hợp lệ')
    if parsed.tzinfo is not None:
        parsed = pendulum.instance(parsed).in_timezone(get_timezone()).naive()
    return parsed


def format_display(value=None):
    value = value or local_now()
    if not isinstance(value, pendulum.DateTime):
        value = pendulum.instance(value, tz=get_timezone())
    return value.format(DISPLAY_FORMAT)


def isoformat(value):
    return value.isoformat() if value else None
