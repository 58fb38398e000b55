"""Tests for the Reflex state mixin, driven without a running Reflex app."""

from types import SimpleNamespace

import pytest

from reflex_infinite_grid.lazyframe_grid import (
    InfiniteGridMixin,
    _SessionRegistry,
    _session_registry,
)

_METHODS = (
    "set_ig_datasource",
    "handle_ig_visible_range",
    "handle_ig_sort",
    "handle_ig_filter",
    "remove_ig_filter",
    "clear_ig_filters",
    "close_ig_session",
    "_ig_session_key",
    "_ig_session",
    "_ig_rereport",
    "_ig_wait",
    "_sync_ig_view",
)


def _plain(name):
    attr = InfiniteGridMixin.__dict__[name]
    return getattr(attr, "fn", attr)


class GridState:
    """Plain object carrying the mixin's vars and methods."""

    def __init__(self, client_token="tab-1"):
        self.router = SimpleNamespace(session=SimpleNamespace(client_token=client_token))
        self.ig_rows = []
        self.ig_row_count = 0
        self.ig_total_known = False
        self.ig_loading = False
        self.ig_loaded = False
        self.ig_stats = ""
        self.ig_filter_model = {"items": []}
        self.ig_filter_descriptions = []
        self.ig_active_filter_fields = []
        self.ig_sort_model = []
        self.ig_column_types = {}
        self.ig_visible_start = 0
        self.ig_visible_end = 0
        self.ig_range_reported = False


for _name in _METHODS:
    setattr(GridState, _name, _plain(_name))


async def drain(handler):
    async for _ in handler:
        pass


@pytest.fixture(autouse=True)
def empty_registry():
    _session_registry.clear()
    yield
    _session_registry.clear()


class TestGridHandlers:
    """Tests for the mixin's event handlers."""

    @pytest.mark.asyncio
    async def test_set_datasource_loads_first_block(self, make_source):
        state = GridState()
        await state.set_ig_datasource(make_source(total_rows=250), cache_overflow_size=0)

        assert state.ig_loaded is True
        assert len(state.ig_rows) == 100
        assert state.ig_rows[5] == {"id": 5, "filters": 0, "sorts": 0, "__row_id__": 5}
        assert state.ig_row_count == 250
        assert state.ig_total_known is True
        assert "GridState:tab-1" in _session_registry

    @pytest.mark.asyncio
    async def test_visible_range_loads_blocks(self, make_source):
        state = GridState()
        await state.set_ig_datasource(make_source(), cache_overflow_size=0)

        await drain(state.handle_ig_visible_range(120, 130))

        assert state.ig_loading is False
        assert len(state.ig_rows) == 200
        assert state.ig_rows[-1]["__row_id__"] == 199
        assert state.ig_stats.startswith("blocks=[0, 1]")

    @pytest.mark.asyncio
    async def test_filters_accumulate_and_reload_visible_range(self, make_source):
        source = make_source()
        state = GridState()
        await state.set_ig_datasource(source, cache_overflow_size=0)
        await drain(state.handle_ig_visible_range(120, 130))

        await drain(state.handle_ig_filter({"items": [{"field": "age", "operator": ">", "value": 30}]}))
        await drain(
            state.handle_ig_filter(
                {"items": [{"field": "status", "operator": "equals", "value": "active"}]}
            )
        )

        assert state.ig_active_filter_fields == ["age", "status"]
        assert state.ig_filter_descriptions == ["age > 30", 'status equals "active"']
        reloaded = [r for r in source.requests if r.start_row == 100]
        assert len(reloaded[-1].column_filters) == 2
        assert {r["__row_id__"] for r in state.ig_rows if r["filters"] == 2} >= {0, 100}

    @pytest.mark.asyncio
    async def test_remove_and_clear_filters(self, make_source):
        state = GridState()
        await state.set_ig_datasource(make_source(), cache_overflow_size=0)
        await drain(state.handle_ig_filter({"items": [{"field": "age", "operator": ">", "value": 30}]}))
        await drain(state.handle_ig_filter({"items": [{"field": "name", "operator": "contains", "value": "a"}]}))

        await drain(state.remove_ig_filter("age"))
        assert state.ig_active_filter_fields == ["name"]

        await drain(state.clear_ig_filters())
        assert state.ig_active_filter_fields == []
        assert state.ig_filter_model == {"items": []}
        assert state.ig_rows[0]["filters"] == 0

    @pytest.mark.asyncio
    async def test_sort_reloads_a_single_row_range(self, make_source):
        source = make_source()
        state = GridState()
        await state.set_ig_datasource(source, cache_overflow_size=0)
        await drain(state.handle_ig_visible_range(150, 150))

        await drain(state.handle_ig_sort([{"field": "age", "sort": "desc"}]))

        assert state.ig_sort_model == [{"field": "age", "sort": "desc"}]
        sorted_starts = [r.start_row for r in source.requests if r.sort_model]
        assert sorted_starts == [0, 100]
        assert state.ig_rows[-1]["sorts"] == 1

    @pytest.mark.asyncio
    async def test_handlers_without_session_do_nothing(self):
        state = GridState("no-session")

        await drain(state.handle_ig_visible_range(0, 10))
        await drain(state.handle_ig_filter({"items": []}))

        assert state.ig_rows == []
        assert state.ig_range_reported is False


class TestSessionRegistry:
    """Tests for per-tab session bookkeeping."""

    @pytest.mark.asyncio
    async def test_sessions_are_per_tab_and_closable(self, make_source):
        first, second = GridState("tab-1"), GridState("tab-2")
        await first.set_ig_datasource(make_source())
        await second.set_ig_datasource(make_source())
        await first.set_ig_datasource(make_source())

        assert len(_session_registry) == 2

        first.close_ig_session()

        assert "GridState:tab-1" not in _session_registry
        assert "GridState:tab-2" in _session_registry
        assert first.ig_loaded is False
        assert first.ig_rows == []

    def test_least_recently_used_session_is_dropped(self):
        registry = _SessionRegistry(max_sessions=2)
        a, b, c = object(), object(), object()
        registry.put("a", a)
        registry.put("b", b)
        assert registry.get("a") is a

        registry.put("c", c)

        assert "b" not in registry
        assert registry.get("a") is a
        assert registry.get("c") is c
        assert len(registry) == 2

    def test_pop_missing_key(self):
        assert _SessionRegistry().pop("nope") is None

    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            _SessionRegistry(max_sessions=0)
