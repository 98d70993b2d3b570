from flask import Blueprint, request
from extensions import db
from models.note import Note, NoteTag
from services.errors import NotFound, ValidationError
from utils import time_utils
from utils.responses import success, error, paginated, apply_sort, request_data, bool_arg
from utils.uploads import save_uploads, cleanup_files, delete_upload, DOCUMENT_EXTENSIONS
from sqlalchemy.exc import SQLAlchemyError
from collections import Counter
import bleach
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

note_bp = Blueprint('note', __name__)

ATTACHMENT_EXTENSIONS = DOCUMENT_EXTENSIONS | {'txt'}

SORT_COLUMNS = {
    'createdAt': 'created_at',
    'updatedAt': 'updated_at',
    'title': 'title',
    'priority': 'priority',
    'category': 'category',
    'reminderDate': 'reminder_date',
}


def clean_text(value):
    if not isinstance(value, str):
        return value
    # Loại bỏ mọi thẻ HTML trong tiêu đề/nội dung
    return bleach.clean(value, tags=[], strip=True)


def get_note_or_404(note_id):
    note = Note.query.filter_by(id=note_id, is_active=True).first()
    if not note:
        raise NotFound('Không tìm thấy ghi chú')
    return note


def apply_note_fields(note, data):
    if 'title' in data:
        note.title = clean_text(data['title'])
    if 'content' in data:
        note.content = clean_text(data['content'])
    for key, column in (('category', 'category'), ('priority', 'priority'),
                        ('reminderDate', 'reminder_date')):
        if key in data:
            setattr(note, column, data[key])
    for key, column in (('isReminder', 'is_reminder'), ('isCompleted', 'is_completed')):
        if key in data:
            value = data[key]
            if isinstance(value, str):
                value = value.strip().lower() == 'true'
            setattr(note, column, bool(value))
    if 'tags' in data:
        note.set_tags(data['tags'])
    if 'relatedTo' in data:
        related = data['relatedTo'] or {}
        if not isinstance(related, dict):
            raise ValidationError('Trường relatedTo không hợp lệ')
        note.related_type = related.get('type')
        note.related_id = related.get('id')
    if note.is_completed and note.completed_at is None:
        note.completed_at = time_utils.now()


def build_attachments(saved):
    return [{
        'url': item['url'],
        'name': item['name'],
        'type': item['type'],
        'size': item['size'],
    } for item in saved]


def list_notes(query):
    return [note.to_dict() for note in query.order_by(Note.created_at.desc()).all()]


@note_bp.route('/notes', methods=['GET'])
def get_notes():
    try:
        category = request.args.get('category')
        priority = request.args.get('priority')
        is_completed = bool_arg('isCompleted')
        is_reminder = bool_arg('isReminder')
        tag = request.args.get('tag', '').strip().lower()
        search = request.args.get('search', '').strip()

        query = Note.query.filter_by(is_active=True)
        if category:
            query = query.filter(Note.category == category)
        if priority:
            query = query.filter(Note.priority == priority)
        if is_completed is not None:
            query = query.filter(Note.is_completed == is_completed)
        if is_reminder is not None:
            query = query.filter(Note.is_reminder == is_reminder)
        if tag:
            query = query.filter(Note.tags.any(NoteTag.name == tag))
        if search:
            query = query.filter(
                Note.title.ilike(f'%{search}%') |
                Note.content.ilike(f'%{search}%') |
                Note.tags.any(NoteTag.name.ilike(f'%{search}%'))
            )
        query = apply_sort(query, Note, SORT_COLUMNS, 'createdAt', 'desc')
        return success(**paginated(query, lambda note: note.to_dict()))
    except SQLAlchemyError as e:
        logger.error(f"Database error fetching notes: {str(e)}")
        return error('Lỗi khi lấy danh sách ghi chú', 500)


# Ghi chú quan trọng chưa hoàn thành
@note_bp.route('/notes/important', methods=['GET'])
def get_important_notes():
    try:
        query = Note.query.filter(
            Note.is_active.is_(True),
            Note.is_completed.is_(False),
            Note.priority.in_(['high', 'urgent'])
        )
        return success(list_notes(query))
    except SQLAlchemyError as e:
        logger.error(f"Database error fetching important notes: {str(e)}")
        return error('Lỗi khi lấy ghi chú quan trọng', 500)


# Ghi chú đã đến hạn nhắc nhở
@note_bp.route('/notes/reminders', methods=['GET'])
def get_due_reminders():
    try:
        notes = Note.query.filter(
            Note.is_active.is_(True),
            Note.is_completed.is_(False),
            Note.is_reminder.is_(True),
            Note.reminder_date <= time_utils.now()
        ).order_by(Note.reminder_date.asc()).all()
        return success([note.to_dict() for note in notes])
    except SQLAlchemyError as e:
        logger.error(f"Database error fetching reminders: {str(e)}")
        return error('Lỗi khi lấy ghi chú nhắc nhở', 500)


@note_bp.route('/notes/categories/<category>', methods=['GET'])
def get_notes_by_category(category):
    try:
        return success(list_notes(Note.query.filter_by(category=category, is_active=True)))
    except SQLAlchemyError as e:
        logger.error(f"Database error fetching notes by category {category}: {str(e)}")
        return error('Lỗi khi lấy ghi chú theo danh mục', 500)


@note_bp.route('/notes/tags/<tag>', methods=['GET'])
def get_notes_by_tag(tag):
    try:
        query = Note.query.filter(Note.is_active.is_(True), Note.tags.any(NoteTag.name == tag.lower()))
        return success(list_notes(query))
    except SQLAlchemyError as e:
        logger.error(f"Database error fetching notes by tag {tag}: {str(e)}")
        return error('Lỗi khi lấy ghi chú theo tag', 500)


@note_bp.route('/notes/<int:note_id>', methods=['GET'])
def get_note_by_id(note_id):
    return success(get_note_or_404(note_id).to_dict())


@note_bp.route('/notes', methods=['POST'])
def create_note():
    saved = []
    try:
        data = request_data()
        saved = save_uploads(request.files.getlist('attachments'), 'notes', ATTACHMENT_EXTENSIONS)
        note = Note(category='general', priority='medium', attachments=build_attachments(saved))
        apply_note_fields(note, data)
        db.session.add(note)
        db.session.commit()
        logger.info(f"Created note {note.title}")
        return success(note.to_dict(), 'Tạo ghi chú mới thành công', 201)
    except ValidationError:
        db.session.rollback()
        cleanup_files(saved)
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        cleanup_files(saved)
        logger.error(f"Database error creating note: {str(e)}")
        return error('Lỗi khi tạo ghi chú mới', 500)


@note_bp.route('/notes/<int:note_id>', methods=['PUT'])
def update_note(note_id):
    note = get_note_or_404(note_id)
    saved = []
    try:
        data = request_data()
        saved = save_uploads(request.files.getlist('attachments'), 'notes', ATTACHMENT_EXTENSIONS)
        apply_note_fields(note, data)
        if saved:
            note.attachments = list(note.attachments or []) + build_attachments(saved)
        db.session.commit()
        logger.info(f"Updated note {note.title}")
        return success(note.to_dict(), 'Cập nhật ghi chú thành công')
    except ValidationError:
        db.session.rollback()
        cleanup_files(saved)
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        cleanup_files(saved)
        logger.error(f"Database error updating note {note_id}: {str(e)}")
        return error('Lỗi khi cập nhật ghi chú', 500)


@note_bp.route('/notes/<int:note_id>/complete', methods=['PUT'])
def complete_note(note_id):
    note = get_note_or_404(note_id)
    try:
        note.is_completed = True
        note.completed_at = time_utils.now()
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database error completing note {note_id}: {str(e)}")
        return error('Lỗi khi đánh dấu ghi chú hoàn thành', 500)
    logger.info(f"Completed note {note.title}")
    return success(note.to_dict(), 'Đánh dấu ghi chú hoàn thành thành công')


@note_bp.route('/notes/<int:note_id>/reminder', methods=['PUT'])
def set_note_reminder(note_id):
    data = request_data()
    if not data.get('reminderDate'):
        raise ValidationError('Ngày nhắc nhở là bắt buộc')
    note = get_note_or_404(note_id)
    try:
        note.reminder_date = data['reminderDate']
        note.is_reminder = True
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database error setting reminder of note {note_id}: {str(e)}")
        return error('Lỗi khi đặt nhắc nhở', 500)
    logger.info(f"Set reminder for note {note.title}")
    return success(note.to_dict(), 'Đặt nhắc nhở thành công')


@note_bp.route('/notes/<int:note_id>/reminder', methods=['DELETE'])
def cancel_note_reminder(note_id):
    note = get_note_or_404(note_id)
    try:
        note.is_reminder = False
        note.reminder_date = None
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database error cancelling reminder of note {note_id}: {str(e)}")
        return error('Lỗi khi hủy nhắc nhở', 500)
    logger.info(f"Cancelled reminder for note {note.title}")
    return success(note.to_dict(), 'Hủy nhắc nhở thành công')


@note_bp.route('/notes/<int:note_id>', methods=['DELETE'])
def delete_note(note_id):
    note = get_note_or_404(note_id)
    try:
        note.is_active = False
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database error deleting note {note_id}: {str(e)}")
        return error('Lỗi khi xóa ghi chú', 500)
    logger.info(f"Soft deleted note {note.title}")
    return success(message='Xóa ghi chú thành công')


@note_bp.route('/notes/<int:note_id>/attachment/<int:attachment_index>', methods=['DELETE'])
def delete_note_attachment(note_id, attachment_index):
    note = get_note_or_404(note_id)
    attachments = list(note.attachments or [])
    if attachment_index < 0 or attachment_index >= len(attachments):
        raise ValidationError('Index file đính kèm không hợp lệ')
    removed = attachments.pop(attachment_index)
    try:
        note.attachments = attachments
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database error deleting attachment of note {note_id}: {str(e)}")
        return error('Lỗi khi xóa file đính kèm', 500)
    delete_upload(removed.get('url'))
    logger.info(f"Removed attachment {attachment_index} from note {note.title}")
    return success(message='Xóa file đính kèm thành công')


# Thống kê ghi chú
@note_bp.route('/notes/stats/overview', methods=['GET'])
def get_note_stats():
    try:
        notes = Note.query.filter_by(is_active=True).all()
        now = time_utils.now()
        total = len(notes)
        completed = sum(1 for note in notes if note.is_completed)
        reminders = sum(1 for note in notes if note.is_reminder)
        due = sum(1 for note in notes
                  if note.is_reminder and not note.is_completed and note.reminder_date and note.reminder_date <= now)

        def group_by(key_func):
            groups = {}
            for note in notes:
                key = key_func(note)
                entry = groups.setdefault(key, {'count': 0, 'completed': 0, 'pending': 0})
                entry['count'] += 1
                entry['completed' if note.is_completed else 'pending'] += 1
            return groups

        categories = group_by(lambda note: note.category)
        priorities = group_by(lambda note: note.priority)
        months = group_by(lambda note: (note.created_at.year, note.created_at.month))
        tags = Counter(tag.name for note in notes for tag in note.tags)

        logger.info('Fetched note statistics')
        return success({
            'overview': {
                'totalNotes': total,
                'completedNotes': completed,
                'pendingNotes': total - completed,
                'reminderNotes': reminders,
                'dueReminders': due,
                'completionRate': round(completed / total * 100, 1) if total else 0,
            },
            'categoryStats': [dict(category=key, **value) for key, value in categories.items()],
            'priorityStats': [dict(priority=key, **value) for key, value in priorities.items()],
            'monthlyStats': [
                {'year': key[0], 'month': key[1], 'total': months[key]['count'],
                 'completed': months[key]['completed'], 'pending': months[key]['pending']}
                for key in sorted(months, reverse=True)[:12]
            ],
            'popularTags': [{'tag': tag, 'count': count} for tag, count in tags.most_common(10)],
        })
    except SQLAlchemyError as e:
        logger.error(f"Database error fetching note stats: {str(e)}")
        return error('Lỗi khi lấy thống kê ghi chú', 500)
