from __future__ import annotations

from contextlib import contextmanager
from threading import Lock
from typing import Iterator

from lessonflow.core.exceptions import SchedulingInProgressError


class SingleFlightGuard:
    """Allows one in-flight operation per key within this process."""

    def __init__(self) -> None:
        self._active: set[str] = set()
        self._lock = Lock()

    def try_acquire(self, key: str) -> bool:
        with self._lock:
            if key in self._active:
                return False
            self._active.add(key)
        return True

    def release(self, key: str) -> None:
        with self._lock:
            self._active.discard(key)

    def is_active(self, key: str) -> bool:
        with self._lock:
            return key in self._active

    def clear(self) -> None:
        with self._lock:
            self._active.clear()


_scheduling_guard = SingleFlightGuard()


@contextmanager
def scheduling_slot(teacher_id: str) -> Iterator[None]:
    if not _scheduling_guard.try_acquire(teacher_id):
        raise SchedulingInProgressError(teacher_id)
    try:
        yield
    finally:
        _scheduling_guard.release(teacher_id)


def scheduling_in_progress(teacher_id: str) -> bool:
    return _scheduling_guard.is_active(teacher_id)


def clear_scheduling_guard() -> None:
    _scheduling_guard.clear()
