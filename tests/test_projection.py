"""Tests for the sparse row projection."""

from reflex_infinite_grid.blocks import Block
from reflex_infinite_grid.projection import project_rows, projected_length


def _block(number, rows, block_size=100):
    start = number * block_size
    return Block(
        block_number=number,
        start_row=start,
        end_row=start + block_size - 1,
        rows=tuple(rows),
        last_accessed=number,
    )


class TestProjectRows:
    """Tests for projecting resident blocks onto absolute indices."""

    def test_no_blocks_unknown_total(self):
        assert project_rows([], None) == []

    def test_known_total_with_no_blocks(self):
        assert project_rows([], 3) == [None, None, None]

    def test_known_total_leaves_gaps(self):
        rows = [{"id": i} for i in range(100)]
        data = project_rows([_block(0, rows)], 250)

        assert len(data) == 250
        assert data[0] == {"id": 0}
        assert data[99] == {"id": 99}
        assert all(r is None for r in data[100:])

    def test_unknown_total_derives_from_highest_block_end(self):
        data = project_rows([_block(0, ["a"]), _block(2, ["c"])], None)

        # Block 2 ends at row 299 even though it holds a single row.
        assert len(data) == 300
        assert data[0] == "a"
        assert data[200] == "c"
        assert data[1] is None

    def test_rows_beyond_total_are_dropped(self):
        data = project_rows([_block(1, list(range(100, 200)))], 150)

        assert len(data) == 150
        assert data[149] == 149

    def test_order_independent(self):
        blocks = [_block(0, ["a"]), _block(1, ["b"])]

        assert project_rows(blocks, None) == project_rows(list(reversed(blocks)), None)

    def test_projected_length(self):
        assert projected_length([], None) == 0
        assert projected_length([_block(4, [])], None) == 500
        assert projected_length([_block(4, [])], 10) == 10
