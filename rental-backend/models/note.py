from extensions import db
from models.hooks import require_fields, check_choice
from services.errors import ValidationError
from utils import time_utils


class Note(db.Model):
    __tablename__ = 'notes'
    __table_args__ = (
        db.Index('idx_note_category', 'category'),
        db.Index('idx_note_priority', 'priority'),
        db.Index('idx_note_reminder_date', 'reminder_date'),
        db.Index('idx_note_is_completed', 'is_completed'),
        db.Index('idx_note_created_at', 'created_at'),
    )
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(20), default='general', nullable=False)
    priority = db.Column(db.String(10), default='medium', nullable=False)
    related_type = db.Column(db.String(20))
    related_id = db.Column(db.Integer)
    reminder_date = db.Column(db.DateTime)
    is_reminder = db.Column(db.Boolean, default=False, nullable=False)
    is_completed = db.Column(db.Boolean, default=False, nullable=False)
    completed_at = db.Column(db.DateTime)
    attachments = db.Column(db.JSON, default=list)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: time_utils.now(), nullable=False)
    updated_at = db.Column(db.DateTime, default=lambda: time_utils.now(), onupdate=lambda: time_utils.now(), nullable=False)

    tags = db.relationship('NoteTag', back_populates='note', order_by='NoteTag.id', cascade='all, delete-orphan', lazy=True)

    CATEGORIES = ['general', 'tenant', 'room', 'payment', 'maintenance', 'reminder', 'important']
    PRIORITIES = ['low', 'medium', 'high', 'urgent']
    RELATED_TYPES = ['room', 'tenant', 'contract', 'payment']

    @db.validates('title')
    def validate_title(self, key, value):
        value = value.strip() if isinstance(value, str) else value
        if value and len(value) > 200:
            raise ValidationError('Tiêu đề không được vượt quá 200 ký tự')
        return value

    @db.validates('content')
    def validate_content(self, key, value):
        return value.strip() if isinstance(value, str) else value

    @db.validates('category')
    def validate_category(self, key, value):
        return check_choice(value, self.CATEGORIES, 'Danh mục ghi chú không hợp lệ')

    @db.validates('priority')
    def validate_priority(self, key, value):
        return check_choice(value, self.PRIORITIES, 'Mức độ ưu tiên không hợp lệ')

    @db.validates('related_type')
    def validate_related_type(self, key, value):
        return check_choice(value or None, self.RELATED_TYPES, 'Loại liên kết không hợp lệ')

    @db.validates('reminder_date', 'completed_at')
    def validate_datetimes(self, key, value):
        return time_utils.to_datetime(value, key)

    def before_save(self):
        require_fields(self, {
            'title': 'Tiêu đề ghi chú là bắt buộc',
            'content': 'Nội dung ghi chú là bắt buộc',
        })

    def set_tags(self, tags):
        if isinstance(tags, str):
            tags = tags.split(',')
        cleaned = []
        for tag in tags or []:
            tag = str(tag).strip().lower()
            if tag and tag not in cleaned:
                cleaned.append(tag)
        self.tags = [NoteTag(name=tag) for tag in cleaned]

    @property
    def status(self):
        if self.is_completed:
            return 'completed'
        if self.is_reminder and self.reminder_date:
            if self.reminder_date <= time_utils.now():
                return 'due'
            return 'scheduled'
        return 'active'

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'content': self.content,
            'category': self.category,
            'priority': self.priority,
            'tags': [tag.name for tag in self.tags],
            'relatedTo': {'type': self.related_type, 'id': self.related_id} if self.related_type else None,
            'reminderDate': time_utils.isoformat(self.reminder_date),
            'isReminder': self.is_reminder,
            'isCompleted': self.is_completed,
            'completedAt': time_utils.isoformat(self.completed_at),
            'attachments': list(self.attachments or []),
            'status': self.status,
            'isActive': self.is_active,
            'createdAt': time_utils.isoformat(self.created_at),
            'updatedAt': time_utils.isoformat(self.updated_at),
        }


class NoteTag(db.Model):
    __tablename__ = 'note_tags'
    __table_args__ = (
        db.Index('idx_note_tag_name', 'name'),
    )
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    note_id = db.Column(db.Integer, db.ForeignKey('notes.id', ondelete='CASCADE'), nullable=False)
    name = db.Column(db.String(50), nullable=False)

    note = db.relationship('Note', back_populates='tags')
