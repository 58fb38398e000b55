"""Block index arithmetic, the resident block cache and the in-flight set.

Both containers are copy-on-write: every mutation replaces the underlying
mapping or set wholesale, so a :meth:`BlockCache.snapshot` or
:attr:`InFlightTracker.blocks` value handed out earlier never changes
underneath its holder.
"""

import itertools
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType

from reflex_infinite_grid.models import Row


def block_of(row_index: int, block_size: int) -> int:
    """Return the number of the block containing *row_index*.

    Floor division, so negative indices map to negative block numbers;
    callers clamp at 0.
    """
    return row_index // block_size


def block_row_range(block_number: int, block_size: int) -> tuple[int, int]:
    """Return ``(start_row, end_row)`` of *block_number*, end exclusive."""
    start_row = block_number * block_size
    return start_row, start_row + block_size


@dataclass(frozen=True)
class Block:
    """A loaded block of rows.

    ``end_row`` is inclusive and always ``start_row + block_size - 1``, even
    for a short final page; only ``len(rows)`` tells how many rows arrived.
    """

    block_number: int
    start_row: int
    end_row: int
    rows: Sequence[Row]
    last_accessed: int


class BlockCache:
    """Resident blocks keyed by block number, bounded by block count.

    Eviction removes the blocks with the oldest ``last_accessed`` stamp.
    Stamps come from a per-cache counter and are assigned on insertion
    only, so the policy is "oldest loaded first": reading a block does not
    protect it.
    """

    def __init__(self, max_blocks: int) -> None:
        if max_blocks < 1:
            raise ValueError(f"max_blocks must be >= 1, got {max_blocks}")
        self.max_blocks = max_blocks
        self._blocks: Mapping[int, Block] = MappingProxyType({})
        self._clock = itertools.count(1)

    def insert(
        self,
        block_number: int,
        start_row: int,
        end_row: int,
        rows: Sequence[Row],
    ) -> tuple[Block, list[int]]:
        """Install a block (replacing any previous one) and evict the excess.

        Returns:
            ``(block, evicted)`` -- the stored block and the numbers of the
            blocks removed to get back within ``max_blocks``.
        """
        block = Block(
            block_number=block_number,
            start_row=start_row,
            end_row=end_row,
            rows=tuple(rows),
            last_accessed=next(self._clock),
        )
        updated = dict(self._blocks)
        updated[block_number] = block
        evicted = self._evict(updated)
        self._blocks = MappingProxyType(updated)
        return block, evicted

    def _evict(self, blocks: dict[int, Block]) -> list[int]:
        excess = len(blocks) - self.max_blocks
        if excess <= 0:
            return []
        oldest = sorted(blocks.values(), key=lambda b: b.last_accessed)[:excess]
        for block in oldest:
            del blocks[block.block_number]
        return [b.block_number for b in oldest]

    def clear(self) -> None:
        self._blocks = MappingProxyType({})

    def get(self, block_number: int) -> Block | None:
        return self._blocks.get(block_number)

    def snapshot(self) -> Mapping[int, Block]:
        """Return the current read-only mapping; later mutations do not affect it."""
        return self._blocks

    def block_numbers(self) -> list[int]:
        return sorted(self._blocks)

    def __contains__(self, block_number: object) -> bool:
        return block_number in self._blocks

    def __len__(self) -> int:
        return len(self._blocks)

    def __iter__(self) -> Iterator[Block]:
        return iter(self._blocks.values())

    def __repr__(self) -> str:
        return f"BlockCache(max_blocks={self.max_blocks}, blocks={self.block_numbers()})"


class InFlightTracker:
    """Block numbers with a fetch outstanding."""

    def __init__(self) -> None:
        self._blocks: frozenset[int] = frozenset()

    @property
    def blocks(self) -> frozenset[int]:
        return self._blocks

    def add(self, block_number: int) -> bool:
        """Mark *block_number* in flight; ``False`` if it already was."""
        if block_number in self._blocks:
            return False
        self._blocks = self._blocks | {block_number}
        return True

    def discard(self, block_number: int) -> None:
        if block_number in self._blocks:
            self._blocks = self._blocks - {block_number}

    def clear(self) -> None:
        self._blocks = frozenset()

    def __contains__(self, block_number: object) -> bool:
        return block_number in self._blocks

    def __len__(self) -> int:
        return len(self._blocks)
