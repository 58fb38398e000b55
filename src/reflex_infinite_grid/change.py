"""Deep-equality change detection for sort and filter state."""

from typing import Generic, TypeVar

T = TypeVar("T")


class ChangeDetector(Generic[T]):
    """Reports each transition of an observed value exactly once.

    The comparison is ``==``, which is structural for the frozen models
    and the tuples holding them.  Detection and acknowledgement happen in
    the same :meth:`observe` call: after a ``True`` the new value is the
    stored one, so observing it again returns ``False``.
    """

    def __init__(self, initial: T) -> None:
        self._previous = initial

    @property
    def previous(self) -> T:
        return self._previous

    def observe(self, current: T) -> bool:
        if current == self._previous:
            return False
        self._previous = current
        return True
