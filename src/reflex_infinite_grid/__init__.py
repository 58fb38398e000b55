"""reflex-infinite-grid – block-cached, prefetching rows for Reflex DataGrids.

A grid asks for rows by visible index range, sort model and filter
conditions; :class:`InfiniteDataSource` fetches fixed-size blocks from a
paginated data source, keeps a bounded number of them resident and exposes
a sparse row list.  :class:`InfiniteGridMixin` wires a session into Reflex
state, and :class:`LazyFrameDataSource` serves a polars LazyFrame::

    pip install reflex-infinite-grid
"""

from reflex_infinite_grid.blocks import Block, BlockCache, InFlightTracker, block_of, block_row_range
from reflex_infinite_grid.change import ChangeDetector
from reflex_infinite_grid.config import CacheOptions
from reflex_infinite_grid.datasource import DataSource, InfiniteDataSource
from reflex_infinite_grid.filters import (
    add_filter_condition,
    clear_all_filters,
    filter_condition_from_mui,
    get_active_filter_count,
    get_filter_condition,
    get_filter_description,
    has_active_filter,
    is_valid_filter_condition,
    merge_mui_filter_model,
    remove_filter_condition,
    sort_model_from_mui,
    update_filter_condition,
)
from reflex_infinite_grid.lazyframe_grid import InfiniteGridMixin
from reflex_infinite_grid.models import (
    FILTER_OPERATORS,
    OPERATOR_LABELS,
    OPERATORS_BY_TYPE,
    FetchRequest,
    FetchResult,
    FilterCondition,
    SortItem,
)
from reflex_infinite_grid.planner import VisibleRangeTracker, plan_blocks
from reflex_infinite_grid.polars_utils import (
    LazyFrameDataSource,
    apply_filter_conditions,
    apply_sort_model,
    column_filter_types,
    polars_dtype_to_filter_type,
    scan_file,
)
from reflex_infinite_grid.projection import project_rows
