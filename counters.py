import threading


class AtomicCounter:
    """Thread-safe monotonically increasing counter. Values are never reused."""

    def __init__(self, start: int = 0):
        self._next = start
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
            return value
