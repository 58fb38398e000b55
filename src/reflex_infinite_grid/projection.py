"""Projection of resident blocks onto a sparse, absolutely indexed row list."""

from collections.abc import Iterable

from reflex_infinite_grid.blocks import Block
from reflex_infinite_grid.models import Row


def projected_length(blocks: Iterable[Block], total_rows: int | None) -> int:
    """Length of the projection: the known total, else the highest block end."""
    if total_rows is not None:
        return max(total_rows, 0)
    return max((b.end_row + 1 for b in blocks), default=0)


def project_rows(blocks: Iterable[Block], total_rows: int | None) -> list[Row | None]:
    """Build the exposed row sequence from *blocks*.

    Each row lands at ``block.start_row + i``; positions no block covers are
    ``None``.  Rows beyond the sequence length are dropped, which happens
    when a block loaded before a filter change outlives the shrink of the
    total.  The result is rebuilt from scratch on every call.
    """
    blocks = list(blocks)
    length = projected_length(blocks, total_rows)
    data: list[Row | None] = [None] * length
    for block in blocks:
        for i, row in enumerate(block.rows):
            index = block.start_row + i
            if index >= length:
                break
            data[index] = row
    return data
