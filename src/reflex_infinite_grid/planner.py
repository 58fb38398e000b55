"""Prefetch planning: which blocks a visible range needs loaded."""

from collections.abc import Container

from reflex_infinite_grid.blocks import block_of


def plan_blocks(
    start_index: int,
    end_index: int,
    *,
    block_size: int,
    overflow: int,
    resident: Container[int],
    in_flight: Container[int],
) -> list[int]:
    """Return the blocks to load for the inclusive range ``[start_index, end_index]``.

    Covers ``overflow`` extra blocks on both sides of the range, clamped at
    block 0, and skips blocks that are already resident or being fetched.
    Calling it again once everything has loaded returns an empty list.

    Raises:
        ValueError: If *end_index* is smaller than *start_index*.
    """
    if end_index < start_index:
        raise ValueError(f"end_index ({end_index}) must be >= start_index ({start_index})")
    if overflow < 0:
        raise ValueError(f"overflow must be >= 0, got {overflow}")

    first = max(0, block_of(start_index, block_size) - overflow)
    last = block_of(end_index, block_size) + overflow
    return [
        n
        for n in range(first, last + 1)
        if n not in resident and n not in in_flight
    ]


class VisibleRangeTracker:
    """Remembers the last reported visible range so repeats are ignored."""

    def __init__(self) -> None:
        self.last: tuple[int, int] | None = None

    def update(self, start_index: int, end_index: int) -> bool:
        """Record the range; ``True`` only if it differs from the previous one."""
        current = (start_index, end_index)
        if current == self.last:
            return False
        self.last = current
        return True

    def reset(self) -> None:
        self.last = None
