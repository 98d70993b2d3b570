"""Lỗi nghiệp vụ dùng chung cho tầng services và controllers."""
import re

SQLITE_UNIQUE = re.compile(r'UNIQUE constraint failed: (?:\w+\.)?(\w+)')
MYSQL_UNIQUE = re.compile(r"Duplicate entry .* for key '(?:\w+\.)?(\w+)'")


class ServiceError(Exception):
    """Base error for service-layer failures."""
    status_code = 400

    def __init__(self, message=None):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'success': False, 'message': self.message}


class ValidationError(ServiceError):
    """Raised when a field constraint is violated."""

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = errors if errors is not None else [message]

    def to_dict(self):
        return {'success': False, 'message': 'Dữ liệu không hợp lệ', 'errors': self.errors}


class DuplicateKeyError(ServiceError):
    """Raised when a unique index rejects a write."""

    def __init__(self, field):
        super().__init__(f'{field} đã tồn tại')
        self.field = field


class PreconditionFailed(ServiceError):
    """Raised when a business rule blocks the operation."""


class NotFound(ServiceError):
    status_code = 404


class UpstreamError(ServiceError):
    """Raised when Discord or VietQR calls fail."""
    status_code = 500

    def __init__(self, message, error=None):
        super().__init__(message)
        self.error = error

    def to_dict(self):
        return {'success': False, 'message': self.message, 'error': self.error}


class MaintenanceWindow(ServiceError):
    status_code = 503

    def __init__(self, payload):
        super().__init__(payload.get('message'))
        self.payload = payload

    def to_dict(self):
        return self.payload


def _camel(name):
    head, *rest = name.split('_')
    return head + ''.join(part.capitalize() for part in rest)


def from_integrity_error(exc):
    """Chuyển IntegrityError của driver thành lỗi nghiệp vụ tương ứng."""
    text = str(getattr(exc, 'orig', exc))
    match = SQLITE_UNIQUE.search(text) or MYSQL_UNIQUE.search(text)
    if match:
        return DuplicateKeyError(_camel(match.group(1)))
    return ValidationError('Dữ liệu vi phạm ràng buộc', [text])
