"""Lock-guarded cells shared between a collector thread and its readers."""

from __future__ import annotations

import threading
from typing import Callable, Generic, TypeVar


T = TypeVar("T")


class SharedValue(Generic[T]):
    """One field group of the snapshot.

    Stored values are immutable (frozen dataclasses, floats, tuples), so a read
    hands out the stored object itself and never blocks on the writer for longer
    than the swap.
    """

    def __init__(self, initial: T) -> None:
        self._lock = threading.Lock()
        self._value = initial

    def get(self) -> T:
        with self._lock:
            return self._value

    def set(self, value: T) -> None:
        with self._lock:
            self._value = value

    def update(self, fn: Callable[[T], T]) -> T:
        with self._lock:
            self._value = fn(self._value)
            return self._value
