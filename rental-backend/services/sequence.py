import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from extensions import db
from models.sequence_counter import SequenceCounter
from utils import time_utils

logger = logging.getLogger(__name__)


def next_value(name, period):
    """Tăng bộ đếm (name, period) trong transaction hiện tại và trả về giá trị mới."""
    table = SequenceCounter.__table__
    where = (table.c.name == name, table.c.period == period)
    increment = table.update().where(*where).values(value=table.c.value + 1)

    result = db.session.execute(increment)
    if result.rowcount == 0:
        try:
            with db.session.begin_nested():
                db.session.execute(table.insert().values(name=name, period=period, value=1))
            return 1
        except IntegrityError:
            # Request khác vừa tạo dòng đếm, tăng lại
            db.session.execute(increment)
    return db.session.execute(select(table.c.value).where(*where)).scalar_one()


def next_contract_number():
    year = time_utils.now().year
    seq = next_value('contract', str(year))
    return f'HD{year}{seq:04d}'


def next_payment_code(month):
    year = time_utils.now().year
    seq = next_value('payment', f'{year}{int(month):02d}')
    return f'TT{year}{int(month):02d}{seq:04d}'
