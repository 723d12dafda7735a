"""
Saturating streak counter shared by all three gesture categories.

Consistent frames push the count up to a ceiling; missing or ambiguous
frames decay it by a fixed step instead of zeroing it, so a single dropped
detection inside a streak costs one frame rather than the whole streak.
"""


class StreakCounter:
    """Bounded consecutive-frame counter with decay."""

    __slots__ = ("name", "_value", "_limit", "_decay_step")

    def __init__(self, name: str, limit: int = 30, decay_step: int = 1):
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self.name = name
        self._value = 0
        self._limit = limit
        self._decay_step = max(0, decay_step)

    def increment(self) -> int:
        if self._value < self._limit:
            self._value += 1
        return self._value

    def decay(self) -> int:
        self._value = max(0, self._value - self._decay_step)
        return self._value

    def reset(self):
        self._value = 0

    def reached(self, threshold: int) -> bool:
        return self._value >= threshold

    @property
    def value(self) -> int:
        return self._value

    def __repr__(self):
        return f"StreakCounter({self.name}={self._value}/{self._limit})"
