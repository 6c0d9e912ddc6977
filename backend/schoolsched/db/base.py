import threading
import time

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


_sequence_lock = threading.Lock()
_last_sequence = 0


def next_insert_sequence() -> int:
    """Strictly increasing nanosecond stamp used to order rows by insertion."""
    global _last_sequence
    with _sequence_lock:
        _last_sequence = max(time.time_ns(), _last_sequence + 1)
        return _last_sequence
