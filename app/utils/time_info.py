"""
TIME INFORMATION UTILITY
========================

Clock helpers kept in one place so the services never call datetime directly:
turn ids, turn timestamps, document dates and the time label used in default
document titles.
"""

import datetime
import threading

_id_lock = threading.Lock()
_last_id = 0


def now() -> datetime.datetime:
    """Current local time (timezone-aware)."""
    return datetime.datetime.now().astimezone()


def today() -> datetime.date:
    return datetime.date.today()


def time_label(moment: datetime.datetime = None) -> str:
    """Return HH:MM:SS for the given moment (default: now), e.g. 14:03:22."""
    return (moment or now()).strftime("%H:%M:%S")


def next_turn_id() -> int:
    """
    Millisecond timestamp, bumped by one when two turns are created in the same
    millisecond, so ids are unique and strictly increasing within the process.
    """
    global _last_id
    with _id_lock:
        candidate = int(now().timestamp() * 1000)
        _last_id = candidate if candidate > _last_id else _last_id + 1
        return _last_id
