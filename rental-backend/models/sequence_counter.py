from extensions import db


class SequenceCounter(db.Model):
    """Bộ đếm tăng dần cho số hợp đồng và mã thanh toán, khóa theo (name, period)."""
    __tablename__ = 'sequence_counters'
    name = db.Column(db.String(30), primary_key=True)
    period = db.Column(db.String(10), primary_key=True)
    value = db.Column(db.Integer, default=0, nullable=False)
