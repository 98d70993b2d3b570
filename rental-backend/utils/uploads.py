import logging
import os
import re
import uuid

from flask import current_app
from unidecode import unidecode
from werkzeug.utils import secure_filename

from services.errors import ValidationError

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif'}
DOCUMENT_EXTENSIONS = IMAGE_EXTENSIONS | {'pdf', 'doc', 'docx'}
MAX_FILE_SIZE = 5 * 1024 * 1024  # 5MB
MAX_FILES = 5


# Hàm chuẩn hóa tên (loại bỏ dấu tiếng Việt và ký tự đặc biệt)
def normalize_name(name):
    normalized = unidecode(name or '')
    normalized = re.sub(r'[^a-zA-Z0-9]', '_', normalized)
    return normalized


def upload_folder(entity):
    folder = os.path.join(current_app.config['UPLOAD_BASE'], entity)
    os.makedirs(folder, exist_ok=True)
    return folder


def save_uploads(files, entity, allowed_extensions=DOCUMENT_EXTENSIONS):
    """Lưu file upload vào UPLOAD_BASE/<entity>; trả về danh sách thông tin file đã lưu."""
    files = [file for file in files or [] if file and file.filename]
    if len(files) > MAX_FILES:
        raise ValidationError(f'Chỉ được tải lên tối đa {MAX_FILES} file')

    folder = upload_folder(entity)
    saved = []
    try:
        for file in files:
            original = secure_filename(normalize_name(os.path.splitext(file.filename)[0])) or 'file'
            ext = file.filename.rsplit('.', 1)[1].lower() if '.' in file.filename else ''
            if ext not in allowed_extensions:
                raise ValidationError(f'File {file.filename}: định dạng không được hỗ trợ')

            file.seek(0, os.SEEK_END)
            size = file.tell()
            file.seek(0)
            if size > MAX_FILE_SIZE:
                raise ValidationError(f'File {file.filename}: vượt quá giới hạn 5MB')

            filename = f"{uuid.uuid4().hex}_{original}.{ext}"
            path = os.path.join(folder, filename)
            file.save(path)
            saved.append({
                'path': path,
                'url': f'/uploads/{entity}/{filename}',
                'name': file.filename,
                'type': file.mimetype,
                'size': size,
            })
            logger.info(f"Saved upload: {path}")
    except ValidationError:
        cleanup_files(saved)
        raise
    return saved


def cleanup_files(saved):
    """Xóa các file vừa lưu khi thao tác chính thất bại; lỗi chỉ được ghi log."""
    for item in saved or []:
        path = item['path'] if isinstance(item, dict) else item
        try:
            if os.path.exists(path):
                os.remove(path)
                logger.info(f"Removed upload after failure: {path}")
        except OSError as e:
            logger.error(f"Error deleting file {path}: {str(e)}")


def delete_upload(url):
    if not url or not url.startswith('/uploads/'):
        return
    relative = url[len('/uploads/'):]
    path = os.path.join(current_app.config['UPLOAD_BASE'], *relative.split('/'))
    try:
        if os.path.exists(path):
            os.remove(path)
            logger.info(f"Deleted file: {path}")
    except OSError as e:
        logger.error(f"Error deleting file {path}: {str(e)}")
