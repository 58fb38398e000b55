"""Block-cached, prefetching view over a paginated data source.

:class:`InfiniteDataSource` is one grid's session: it owns the block cache,
the in-flight set, the total row count and the sort/filter state.  It is
constructed explicitly per grid and never shared.

Data flow::

    report_visible_range(start, end)
        -> plan_blocks()           blocks to ensure resident (+ overflow)
        -> load(n)                 in-flight mark, then asyncio task
        -> datasource.get_rows()   FetchRequest -> FetchResult
        -> BlockCache.insert()     oldest-loaded blocks evicted
        -> rows                    sparse projection, rebuilt on demand

    set_sort_model() / set_filters()
        -> ChangeDetector.observe()
        -> cache cleared (+ total reset for filters) -> block 0 reloaded

The session must be constructed inside a running event loop: construction
immediately schedules the load of block 0 so the view is never empty while
waiting for the first range report.

Example::

    source = LazyFrameDataSource(pl.scan_parquet("data.parquet"))
    grid = InfiniteDataSource(source, cache_block_size=200)
    grid.report_visible_range(0, 49)
    await grid.wait_idle()
    first_rows = grid.rows[:50]
"""

import asyncio
import time
from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from reflex_infinite_grid.blocks import Block, BlockCache, InFlightTracker, block_row_range
from reflex_infinite_grid.change import ChangeDetector
from reflex_infinite_grid.config import CacheOptions
from reflex_infinite_grid.models import (
    FetchRequest,
    FetchResult,
    FilterCondition,
    Row,
    SortItem,
    as_filters,
    as_sort_model,
)
from reflex_infinite_grid.planner import VisibleRangeTracker, plan_blocks
from reflex_infinite_grid.projection import project_rows


class DataSource(Protocol):
    """The fetch contract consumed by :class:`InfiniteDataSource`.

    ``get_rows`` answers one block's request or raises on failure.  A data
    source may also expose an integer ``row_count`` attribute, used as the
    initial total before any fetch reports one.
    """

    async def get_rows(self, request: FetchRequest) -> FetchResult: ...


class InfiniteDataSource:
    """Caching and prefetch engine for one grid.

    Args:
        datasource: Object implementing :class:`DataSource`.
        options: Cache options.  When omitted, built from *overrides*.
        **overrides: Individual :class:`CacheOptions` fields, applied on top
            of *options*.

    Raises:
        ValueError: If an option is invalid.
        RuntimeError: If no event loop is running.
    """

    def __init__(
        self,
        datasource: DataSource,
        options: CacheOptions | None = None,
        **overrides: Any,
    ) -> None:
        if options is None:
            options = CacheOptions(**overrides)
        elif overrides:
            options = options.replace(**overrides)
        self.options = options
        self._datasource = datasource

        self._cache = BlockCache(options.max_blocks_in_cache)
        self._in_flight = InFlightTracker()
        self._visible_range = VisibleRangeTracker()
        self._total_rows: int | None = _initial_row_count(datasource)
        self._sort_model: tuple[SortItem, ...] = options.default_sort
        self._filters: tuple[FilterCondition, ...] = options.default_filters
        # Both detectors start from "nothing", so non-empty defaults count
        # as a change on the first evaluation.
        self._sort_detector: ChangeDetector[tuple[SortItem, ...]] = ChangeDetector(())
        self._filter_detector: ChangeDetector[tuple[FilterCondition, ...]] = ChangeDetector(())
        self._generation = 0
        self._tasks: set[asyncio.Task[None]] = set()
        self._projection: tuple[Row | None, ...] | None = None
        self.last_error: Exception | None = None

        self._sync_state()
        self._bootstrap()

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------

    @property
    def rows(self) -> list[Row | None]:
        """The exposed row sequence; ``None`` marks rows not loaded yet.

        Each read returns a fresh list, so editing it never leaks into the
        session's projection.
        """
        return list(self._projected())

    @property
    def total_rows(self) -> int | None:
        """Known total row count, or ``None`` while unknown."""
        return self._total_rows

    @property
    def row_count(self) -> int:
        """Length of :attr:`rows` (the known total or the derived bound)."""
        return len(self._projected())

    @property
    def blocks(self) -> Mapping[int, Block]:
        """Read-only snapshot of the resident blocks."""
        return self._cache.snapshot()

    @property
    def in_flight(self) -> frozenset[int]:
        return self._in_flight.blocks

    @property
    def sort_model(self) -> tuple[SortItem, ...]:
        return self._sort_model

    @property
    def filters(self) -> tuple[FilterCondition, ...]:
        return self._filters

    def stats(self) -> dict[str, Any]:
        """Summary of the cache state, for status bars and debugging."""
        loaded = sum(1 for row in self._projected() if row is not None)
        return {
            "resident_blocks": self._cache.block_numbers(),
            "in_flight": sorted(self._in_flight.blocks),
            "total_rows": self._total_rows,
            "row_count": self.row_count,
            "loaded_rows": loaded,
            "generation": self._generation,
        }

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def report_visible_range(self, start_index: int, end_index: int) -> list[int]:
        """Ensure the blocks for the inclusive range ``[start_index, end_index]``.

        A range identical to the previously reported one is ignored.

        Returns:
            The block numbers whose loads were issued by this call.

        Raises:
            ValueError: If *end_index* is smaller than *start_index*.
        """
        if end_index < start_index:
            raise ValueError(f"end_index ({end_index}) must be >= start_index ({start_index})")
        if not self._visible_range.update(start_index, end_index):
            return []
        return [n for n in self.plan(start_index, end_index) if self.load(n)]

    def plan(self, start_index: int, end_index: int) -> list[int]:
        """Blocks the range would load right now, without loading them."""
        return plan_blocks(
            start_index,
            end_index,
            block_size=self.options.cache_block_size,
            overflow=self.options.cache_overflow_size,
            resident=self._cache,
            in_flight=self._in_flight,
        )

    def set_sort_model(self, sort_model: Iterable[SortItem | Mapping[str, Any]] | None) -> None:
        self._sort_model = as_sort_model(sort_model)
        if self._sync_state():
            self._bootstrap()

    def set_filters(
        self,
        filters: Iterable[FilterCondition | Mapping[str, Any]] | None,
    ) -> None:
        """Replace the filter conditions; the last condition given for a column wins."""
        self._filters = as_filters(filters)
        if self._sync_state():
            self._bootstrap()

    async def wait_idle(self) -> None:
        """Wait until every outstanding load, including ones issued meanwhile, is done."""
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending)

    # ------------------------------------------------------------------
    # Loader
    # ------------------------------------------------------------------

    def load(self, block_number: int) -> bool:
        """Start fetching *block_number* unless it is already in flight.

        The in-flight mark is set before the fetch task is created, so a
        planning pass running before the task starts cannot issue it again.

        Returns:
            ``True`` if a fetch was issued.
        """
        if block_number < 0:
            raise ValueError(f"block_number must be >= 0, got {block_number}")
        loop = asyncio.get_running_loop()
        if not self._in_flight.add(block_number):
            return False

        start_row, end_row = block_row_range(block_number, self.options.cache_block_size)
        request = FetchRequest(
            start_row=start_row,
            end_row=end_row,
            sort_model=self._sort_model,
            column_filters=self._filters,
        )
        task = loop.create_task(self._run_load(block_number, request, self._generation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._log(f"load issued: block={block_number}, rows=[{start_row}, {end_row})")
        return True

    async def _run_load(self, block_number: int, request: FetchRequest, generation: int) -> None:
        t0 = time.perf_counter()
        try:
            result = await self._datasource.get_rows(request)
        except Exception as exc:
            elapsed_ms = (time.perf_counter() - t0) * 1000
            if not self._is_current(generation):
                self._log(f"stale load failed: block={block_number}, error={exc!r}")
                return
            self._in_flight.discard(block_number)
            self.last_error = exc
            self._log(
                f"load failed: block={block_number}, error={exc!r}, "
                f"elapsed={elapsed_ms:.1f}ms"
            )
            return

        elapsed_ms = (time.perf_counter() - t0) * 1000
        if not self._is_current(generation):
            self._log(f"stale load dropped: block={block_number}, elapsed={elapsed_ms:.1f}ms")
            return

        _, evicted = self._cache.insert(
            block_number,
            request.start_row,
            request.start_row + self.options.cache_block_size - 1,
            result.rows,
        )
        self._in_flight.discard(block_number)
        if result.last_row_index is not None:
            self._total_rows = result.last_row_index + 1
        self.last_error = None
        self._projection = None
        self._log(
            f"load done: block={block_number}, +{len(result.rows)} rows, "
            f"total={self._total_rows}, evicted={evicted}, "
            f"elapsed={elapsed_ms:.1f}ms"
        )

    def _is_current(self, generation: int) -> bool:
        return not self.options.discard_stale_loads or generation == self._generation

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def _sync_state(self) -> bool:
        """Run both change detectors; return ``True`` if the cache was cleared."""
        invalidated = False
        previous_sort = self._sort_detector.previous
        if self._sort_detector.observe(self._sort_model) and (self._sort_model or previous_sort):
            self._invalidate(reset_total=False, reason="sort")
            invalidated = True
        if self._filter_detector.observe(self._filters):
            self._invalidate(reset_total=True, reason="filter")
            invalidated = True
        return invalidated

    def _invalidate(self, *, reset_total: bool, reason: str) -> None:
        dropped = self._cache.block_numbers()
        self._cache.clear()
        if reset_total:
            self._total_rows = None
        if self.options.discard_stale_loads:
            self._generation += 1
            self._in_flight.clear()
        self._visible_range.reset()
        self._projection = None
        self._log(
            f"invalidated ({reason}): dropped blocks={dropped}, "
            f"total={self._total_rows}, generation={self._generation}"
        )

    def _projected(self) -> tuple[Row | None, ...]:
        if self._projection is None:
            self._projection = tuple(project_rows(self._cache, self._total_rows))
        return self._projection

    def _bootstrap(self) -> None:
        if len(self._cache) == 0 and 0 not in self._in_flight:
            self.load(0)

    def _log(self, message: str) -> None:
        if self.options.debug_log:
            print(f"[InfiniteDataSource] {message}")

    def __repr__(self) -> str:
        return (
            f"InfiniteDataSource(blocks={self._cache.block_numbers()}, "
            f"in_flight={sorted(self._in_flight.blocks)}, total_rows={self._total_rows})"
        )


def _initial_row_count(datasource: Any) -> int | None:
    row_count = getattr(datasource, "row_count", None)
    if isinstance(row_count, int) and not isinstance(row_count, bool):
        return row_count
    return None
