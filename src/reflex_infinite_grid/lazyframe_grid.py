"""Reflex state mixin exposing an :class:`InfiniteDataSource` to the frontend.

Users inherit from :class:`InfiniteGridMixin` **and** ``rx.State``, hand it
a data source (or a polars LazyFrame), and wire the frontend's visible
range, sort and filter callbacks to the ``handle_ig_*`` event handlers.

``InfiniteGridMixin`` is a Reflex **state mixin** (``mixin=True``).  Each
subclass gets its own independent set of ``ig_*`` reactive variables, so
multiple grids on the same page do not interfere with each other.

The session object (block cache, in-flight loads) is not JSON-serialisable,
so it lives outside Reflex state in a registry keyed by the state class and
the client token: one session per grid per browser tab.

Typical usage::

    from reflex_infinite_grid import InfiniteGridMixin, scan_file

    class MyState(InfiniteGridMixin, rx.State):
        async def load_data(self):
            await self.set_ig_lazyframe(scan_file(Path("data.parquet")))
"""

import time
from collections import OrderedDict
from typing import Any

import polars as pl
import reflex as rx

from reflex_infinite_grid.datasource import DataSource, InfiniteDataSource
from reflex_infinite_grid.filters import (
    get_filter_description,
    merge_mui_filter_model,
    remove_filter_condition,
    sort_model_from_mui,
)
from reflex_infinite_grid.polars_utils import LazyFrameDataSource, column_filter_types

_ROW_ID_FIELD: str = "__row_id__"

_DEFAULT_MAX_SESSIONS: int = 64


class _SessionRegistry:
    """Sessions keyed by state class and client token, least recently used evicted.

    The map is bounded: once ``max_sessions`` tabs hold a session, the one
    touched longest ago is dropped and its tab starts over at the next
    ``set_ig_datasource``.  ``close_ig_session`` drops a session explicitly.
    """

    def __init__(self, max_sessions: int = _DEFAULT_MAX_SESSIONS) -> None:
        if max_sessions < 1:
            raise ValueError(f"max_sessions must be >= 1, got {max_sessions}")
        self.max_sessions = max_sessions
        self._sessions: OrderedDict[str, InfiniteDataSource] = OrderedDict()

    def get(self, key: str) -> InfiniteDataSource | None:
        session = self._sessions.get(key)
        if session is not None:
            self._sessions.move_to_end(key)
        return session

    def put(self, key: str, session: InfiniteDataSource) -> None:
        self._sessions[key] = session
        self._sessions.move_to_end(key)
        while len(self._sessions) > self.max_sessions:
            self._sessions.popitem(last=False)

    def pop(self, key: str) -> InfiniteDataSource | None:
        return self._sessions.pop(key, None)

    def clear(self) -> None:
        self._sessions.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


_session_registry = _SessionRegistry()


def _to_grid_row(index: int, row: Any) -> dict[str, Any]:
    if isinstance(row, dict):
        return {**row, _ROW_ID_FIELD: index}
    return {"value": row, _ROW_ID_FIELD: index}


class InfiniteGridMixin(rx.State, mixin=True):
    """Reflex State mixin for block-cached, scroll-driven DataGrids.

    All state variable names are prefixed with ``ig_`` to avoid collisions
    when composed with other state.

    ``ig_rows`` carries only the loaded rows, each tagged with its absolute
    index in ``__row_id__``; ``ig_row_count`` is the known total (or the
    bound derived from the loaded blocks) so the frontend can size its
    scroller and show placeholders for the gaps.
    """

    # -- Frontend state vars --
    ig_rows: list[dict[str, Any]] = []
    ig_row_count: int = 0
    ig_total_known: bool = False
    ig_loading: bool = False
    ig_loaded: bool = False
    ig_stats: str = ""
    ig_filter_model: dict[str, Any] = {"items": []}
    ig_filter_descriptions: list[str] = []
    ig_active_filter_fields: list[str] = []
    ig_sort_model: list[dict[str, Any]] = []
    ig_column_types: dict[str, str] = {}
    ig_visible_start: int = 0
    ig_visible_end: int = 0
    ig_range_reported: bool = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def set_ig_datasource(self, datasource: DataSource, **options: Any) -> None:
        """Start a new session over *datasource* and load its first block.

        Args:
            datasource: Any object implementing the fetch contract.
            **options: :class:`~reflex_infinite_grid.config.CacheOptions`
                fields (``cache_block_size``, ``max_blocks_in_cache``, ...).
        """
        session = InfiniteDataSource(datasource, **options)
        _session_registry.put(self._ig_session_key(), session)
        if isinstance(datasource, LazyFrameDataSource):
            self.ig_column_types = column_filter_types(datasource.schema)  # type: ignore[assignment]
        self.ig_visible_start = 0  # type: ignore[assignment]
        self.ig_visible_end = 0  # type: ignore[assignment]
        self.ig_range_reported = False  # type: ignore[assignment]
        self.ig_filter_model = {"items": []}  # type: ignore[assignment]
        await session.wait_idle()
        self.ig_loaded = True  # type: ignore[assignment]
        self._sync_ig_view(session)

    async def set_ig_lazyframe(self, lf: pl.LazyFrame, **options: Any) -> None:
        """Shortcut for :meth:`set_ig_datasource` with a :class:`LazyFrameDataSource`."""
        debug_log = bool(options.get("debug_log", False))
        await self.set_ig_datasource(LazyFrameDataSource(lf, debug_log=debug_log), **options)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def handle_ig_visible_range(self, start: int, end: int):
        """Load the blocks around the rows the frontend currently shows.

        This is an async generator so the loading flag reaches the
        frontend before the fetches complete.
        """
        session = self._ig_session()
        if session is None:
            return
        self.ig_visible_start = start  # type: ignore[assignment]
        self.ig_visible_end = end  # type: ignore[assignment]
        self.ig_range_reported = True  # type: ignore[assignment]
        issued = session.report_visible_range(start, end)
        if not issued:
            return
        async for _ in self._ig_wait(session, f"Loading blocks {issued}..."):
            yield

    async def handle_ig_sort(self, sort_model: list[dict[str, Any]]):
        """Handle a MUI sort model change; the cache is dropped and refilled."""
        session = self._ig_session()
        if session is None:
            return
        self.ig_sort_model = sort_model  # type: ignore[assignment]
        session.set_sort_model(sort_model_from_mui(sort_model))
        self._ig_rereport(session)
        async for _ in self._ig_wait(session, "Sorting..."):
            yield

    async def handle_ig_filter(self, filter_model: dict[str, Any]):
        """Handle a MUI filter model change with multi-column accumulation.

        MUI DataGrid Community edition sends one filter item at a time, so
        each item is merged into the session's conditions (see
        :func:`~reflex_infinite_grid.filters.merge_mui_filter_model`).
        """
        session = self._ig_session()
        if session is None:
            return
        self.ig_filter_model = filter_model  # type: ignore[assignment]
        session.set_filters(merge_mui_filter_model(session.filters, filter_model))
        self._ig_rereport(session)
        async for _ in self._ig_wait(session, "Filtering..."):
            yield

    async def remove_ig_filter(self, column: str):
        """Drop the filter on *column*."""
        session = self._ig_session()
        if session is None:
            return
        session.set_filters(remove_filter_condition(session.filters, column))
        self._ig_rereport(session)
        async for _ in self._ig_wait(session, "Filtering..."):
            yield

    async def clear_ig_filters(self):
        """Clear all filters and the MUI filter UI."""
        session = self._ig_session()
        if session is None:
            return
        self.ig_filter_model = {"items": []}  # type: ignore[assignment]
        session.set_filters(())
        self._ig_rereport(session)
        async for _ in self._ig_wait(session, "Clearing filters..."):
            yield

    def close_ig_session(self) -> None:
        """Drop this tab's session (bind to the grid page's ``on_unmount``)."""
        _session_registry.pop(self._ig_session_key())
        self.ig_rows = []  # type: ignore[assignment]
        self.ig_row_count = 0  # type: ignore[assignment]
        self.ig_total_known = False  # type: ignore[assignment]
        self.ig_loaded = False  # type: ignore[assignment]
        self.ig_range_reported = False  # type: ignore[assignment]
        self.ig_stats = ""  # type: ignore[assignment]

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _ig_session_key(self) -> str:
        return f"{type(self).__name__}:{self.router.session.client_token}"

    def _ig_session(self) -> InfiniteDataSource | None:
        return _session_registry.get(self._ig_session_key())

    def _ig_rereport(self, session: InfiniteDataSource) -> None:
        """Re-plan the last visible range after an invalidation emptied the cache."""
        if self.ig_range_reported:
            session.report_visible_range(self.ig_visible_start, self.ig_visible_end)

    async def _ig_wait(self, session: InfiniteDataSource, message: str):
        self.ig_loading = True  # type: ignore[assignment]
        self.ig_stats = message  # type: ignore[assignment]
        yield
        t0 = time.perf_counter()
        await session.wait_idle()
        self._sync_ig_view(session, elapsed_ms=(time.perf_counter() - t0) * 1000)
        self.ig_loading = False  # type: ignore[assignment]

    def _sync_ig_view(self, session: InfiniteDataSource, elapsed_ms: float | None = None) -> None:
        """Copy the session's projection and filter summary into state vars."""
        self.ig_rows = [  # type: ignore[assignment]
            _to_grid_row(i, row) for i, row in enumerate(session.rows) if row is not None
        ]
        self.ig_row_count = session.row_count  # type: ignore[assignment]
        self.ig_total_known = session.total_rows is not None  # type: ignore[assignment]
        self.ig_filter_descriptions = [  # type: ignore[assignment]
            get_filter_description(c) for c in session.filters
        ]
        self.ig_active_filter_fields = [c.column for c in session.filters]  # type: ignore[assignment]

        stats = session.stats()
        timing = f"  {elapsed_ms:.0f}ms" if elapsed_ms is not None else ""
        self.ig_stats = (  # type: ignore[assignment]
            f"blocks={stats['resident_blocks']}  "
            f"loaded={stats['loaded_rows']:,} / {stats['row_count']:,}{timing}"
        )
