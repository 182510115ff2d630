"""Per-second rates from monotonic counters that may reset."""

from __future__ import annotations


class RateSampler:
    """Turns a cumulative counter into units per second.

    The first sample, and any sample lower than the stored baseline (reboot,
    interface restart, counter wrap), yields 0.0 and becomes the new baseline.
    """

    def __init__(self) -> None:
        self._previous: int | None = None

    @property
    def previous(self) -> int | None:
        return self._previous

    def reset(self) -> None:
        self._previous = None

    def sample(self, current: int, elapsed_s: float) -> float:
        previous = self._previous
        self._previous = current
        if previous is None or current < previous or elapsed_s <= 0:
            return 0.0
        return (current - previous) / elapsed_s
