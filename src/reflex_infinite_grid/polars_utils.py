"""Polars-backed data source implementing the block fetch contract.

:class:`LazyFrameDataSource` answers each block request with a lazy query
(filter -> count -> sort -> slice) and collects only the requested slice,
so the full dataset is never materialised.  Filter conditions and sort
models are translated into polars expressions by
:func:`apply_filter_conditions` and :func:`apply_sort_model`.
"""

import asyncio
import datetime as dt
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

import polars as pl

from reflex_infinite_grid.filters import is_valid_filter_condition
from reflex_infinite_grid.models import FetchRequest, FetchResult, FilterCondition, SortItem

_ROW_ID_FIELD: str = "__row_id__"


# ---------------------------------------------------------------------------
# File scanner
# ---------------------------------------------------------------------------

def scan_file(path: Path) -> pl.LazyFrame:
    """Scan a tabular data file into a LazyFrame.

    Auto-detects the file format from the extension:

    * ``.parquet`` / ``.pq`` -- ``pl.scan_parquet()``.
    * ``.csv`` -- ``pl.scan_csv()``.
    * ``.tsv`` -- ``pl.scan_csv(separator="\\t")``.
    * ``.json`` -- ``pl.read_json().lazy()`` (no streaming scan).
    * ``.ndjson`` / ``.jsonl`` -- ``pl.scan_ndjson()``.
    * ``.ipc`` / ``.arrow`` / ``.feather`` -- ``pl.scan_ipc()``.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If the file extension is not recognised.
    """
    path = Path(path).resolve()
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    suffix = path.suffix.lower()

    if suffix in (".parquet", ".pq"):
        return pl.scan_parquet(path)
    if suffix == ".csv":
        return pl.scan_csv(path, try_parse_dates=True)
    if suffix == ".tsv":
        return pl.scan_csv(path, separator="\t", try_parse_dates=True)
    if suffix == ".json":
        return pl.read_json(path).lazy()
    if suffix in (".ndjson", ".jsonl"):
        return pl.scan_ndjson(path)
    if suffix in (".ipc", ".arrow", ".feather"):
        return pl.scan_ipc(path)

    raise ValueError(
        f"Unsupported file extension: {suffix!r}. "
        "Supported: .parquet, .pq, .csv, .tsv, .json, .ndjson, .jsonl, "
        ".ipc, .arrow, .feather"
    )


# ---------------------------------------------------------------------------
# Column types
# ---------------------------------------------------------------------------

def polars_dtype_to_filter_type(dtype: pl.DataType) -> str:
    """Map a polars DataType to the filter editor type of its column.

    Returns:
        One of ``"string"``, ``"number"``, ``"date"``, ``"boolean"``,
        ``"enum"``.
    """
    if isinstance(dtype, pl.Boolean):
        return "boolean"
    if dtype.is_numeric():
        return "number"
    if isinstance(dtype, (pl.Date, pl.Datetime)):
        return "date"
    if isinstance(dtype, (pl.Categorical, pl.Enum)):
        return "enum"
    # Everything else (String, List, Struct, Duration, ...)
    return "string"


def column_filter_types(schema: pl.Schema) -> dict[str, str]:
    """Return ``{column: filter type}`` for every column of *schema*."""
    return {name: polars_dtype_to_filter_type(dtype) for name, dtype in schema.items()}


def _col_to_str_expr(col: pl.Expr, dtype: pl.DataType) -> pl.Expr:
    """Convert a column expression to String; lists are comma-joined."""
    if isinstance(dtype, (pl.List, pl.Array)):
        return col.cast(pl.List(pl.String)).list.join(",")
    return col.cast(pl.String)


def _coerce_numeric(value: Any) -> int | float | None:
    """Try to coerce *value* to a number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        for conv in (int, float):
            try:
                return conv(value)
            except ValueError:
                continue
    return None


def _coerce_temporal(value: Any, dtype: pl.DataType) -> dt.date | dt.datetime | None:
    """Coerce *value* (date, datetime or ISO string) to match a Date/Datetime column.

    Datetimes come back naive, expressed as wall time in the column's time
    zone (UTC for naive columns); :func:`_operand_lit` re-attaches the zone.
    """
    if isinstance(value, str):
        try:
            value = dt.datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    if isinstance(dtype, pl.Date):
        if isinstance(value, dt.datetime):
            return value.date()
        if isinstance(value, dt.date):
            return value
        return None
    if isinstance(value, dt.datetime):
        if value.tzinfo is not None:
            time_zone = getattr(dtype, "time_zone", None) or "UTC"
            target = dt.timezone.utc if time_zone == "UTC" else ZoneInfo(time_zone)
            value = value.astimezone(target).replace(tzinfo=None)
        return value
    if isinstance(value, dt.date):
        return dt.datetime(value.year, value.month, value.day)
    return None


def _operand_lit(operand: Any, dtype: pl.DataType) -> pl.Expr:
    """Literal for a typed comparison, carrying the column's time zone if any."""
    lit = pl.lit(operand)
    time_zone = getattr(dtype, "time_zone", None)
    if isinstance(dtype, pl.Datetime) and time_zone:
        lit = lit.dt.replace_time_zone(time_zone)
    return lit


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

_COMPARISONS: dict[str, str] = {
    "greaterThan": "gt",
    "after": "gt",
    "lessThan": "lt",
    "before": "lt",
    "greaterThanOrEqual": "ge",
    "onOrAfter": "ge",
    "lessThanOrEqual": "le",
    "onOrBefore": "le",
}


def _build_filter_expr(condition: FilterCondition, schema: pl.Schema) -> pl.Expr | None:
    """Translate a single filter condition to a polars expression.

    Returns ``None`` if the condition cannot be translated (unknown column,
    incomplete condition, or a value that does not fit the column type);
    such conditions are skipped rather than matching nothing.
    """
    if not is_valid_filter_condition(condition):
        return None
    if condition.column not in schema:
        return None

    operator = condition.operator
    value = condition.value
    col = pl.col(condition.column)
    dtype = schema[condition.column]
    filter_type = polars_dtype_to_filter_type(dtype)
    str_col = _col_to_str_expr(col, dtype)

    # -- operators that don't need a value --
    if operator == "isEmpty":
        return col.is_null() | (str_col.str.strip_chars() == "")
    if operator == "isNotEmpty":
        return col.is_not_null() & (str_col.str.strip_chars() != "")

    # -- set membership (compared as strings, like dropdown values) --
    if operator in ("oneOf", "notOneOf"):
        options = value if isinstance(value, (list, tuple)) else (value,)
        expr = str_col.is_in([str(v) for v in options])
        return expr if operator == "oneOf" else ~expr

    # -- substring operators (case-insensitive) --
    lowered = str_col.str.to_lowercase()
    needle = str(value).lower()
    if operator == "contains":
        return lowered.str.contains(needle, literal=True)
    if operator == "notContains":
        return ~lowered.str.contains(needle, literal=True)
    if operator == "startsWith":
        return lowered.str.starts_with(needle)
    if operator == "endsWith":
        return lowered.str.ends_with(needle)

    # -- typed comparisons --
    operand: Any
    if filter_type == "boolean":
        operand = _coerce_bool(value)
    elif filter_type == "number":
        operand = _coerce_numeric(value)
    elif filter_type == "date":
        operand = _coerce_temporal(value, dtype)
    else:
        operand = None

    if operator in ("equals", "notEquals"):
        if operand is None:
            expr = lowered == needle
        else:
            expr = col == _operand_lit(operand, dtype)
        return expr if operator == "equals" else ~expr

    if operator == "between":
        if filter_type == "number":
            upper = _coerce_numeric(condition.value2)
        elif filter_type == "date":
            upper = _coerce_temporal(condition.value2, dtype)
        else:
            return None
        if operand is None or upper is None:
            return None
        return (col >= _operand_lit(operand, dtype)) & (col <= _operand_lit(upper, dtype))

    method = _COMPARISONS.get(operator)
    if method is None:
        return None
    if operand is None:
        # Fall back to lexical comparison, e.g. for string columns.
        return getattr(str_col, method)(pl.lit(str(value)))
    return getattr(col, method)(_operand_lit(operand, dtype))


def apply_filter_conditions(
    lf: pl.LazyFrame,
    conditions: Iterable[FilterCondition],
    schema: pl.Schema | None = None,
) -> pl.LazyFrame:
    """AND-combine *conditions* into a single ``lf.filter()`` -- **no collect**.

    Args:
        lf: The polars LazyFrame to filter.
        conditions: Filter conditions; untranslatable ones are skipped.
        schema: Optional schema override.  If ``None``, the schema is
            obtained from ``lf.collect_schema()``.

    Returns:
        The filtered ``pl.LazyFrame``.
    """
    conditions = list(conditions)
    if not conditions:
        return lf

    if schema is None:
        schema = lf.collect_schema()

    exprs = [e for e in (_build_filter_expr(c, schema) for c in conditions) if e is not None]
    if not exprs:
        return lf

    combined = exprs[0]
    for e in exprs[1:]:
        combined = combined & e
    return lf.filter(combined)


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------

def apply_sort_model(
    lf: pl.LazyFrame,
    sort_model: Iterable[SortItem],
    schema: pl.Schema | None = None,
) -> pl.LazyFrame:
    """Sort by the model's columns in priority order -- **no collect**.

    Nulls come first when ascending and last when descending.  Columns
    missing from *schema* (when given) are ignored.
    """
    by: list[str] = []
    descending: list[bool] = []
    for item in sort_model:
        if schema is not None and item.column_id not in schema:
            continue
        by.append(item.column_id)
        descending.append(item.descending)

    if not by:
        return lf

    return lf.sort(by=by, descending=descending, nulls_last=descending, maintain_order=True)


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------

def _dataframe_to_dicts(df: pl.DataFrame) -> list[dict[str, Any]]:
    """Convert a DataFrame to a list of JSON-safe dicts.

    Non-JSON-safe column types are converted automatically:
    * Temporal columns (Date, Datetime, Time, Duration) -> ISO-8601 strings.
    * List columns -> comma-joined strings (inner values cast to String first).
    * Struct columns -> cast to String.
    """
    temporal_cols: set[str] = set()
    list_cols: set[str] = set()
    struct_cols: set[str] = set()

    for name, dtype in df.schema.items():
        if isinstance(dtype, (pl.Date, pl.Datetime, pl.Time, pl.Duration)):
            temporal_cols.add(name)
        elif isinstance(dtype, pl.List):
            list_cols.add(name)
        elif isinstance(dtype, pl.Struct):
            struct_cols.add(name)

    if not (temporal_cols | list_cols | struct_cols):
        return df.to_dicts()

    exprs: list[pl.Expr] = []
    for c in df.columns:
        if c in list_cols:
            exprs.append(pl.col(c).cast(pl.List(pl.String)).list.join(","))
        elif c in temporal_cols or c in struct_cols:
            exprs.append(pl.col(c).cast(pl.String))
        else:
            exprs.append(pl.col(c))

    return df.select(exprs).to_dicts()


# ---------------------------------------------------------------------------
# Data source
# ---------------------------------------------------------------------------

class LazyFrameDataSource:
    """Fetch-contract implementation over a polars LazyFrame.

    Each request runs filter -> count -> sort -> slice in a worker thread
    and returns the slice as JSON-safe dicts.  Every row carries its
    absolute index within the filtered/sorted result in
    ``row_id_field``.

    Args:
        lf: The LazyFrame to serve.
        row_id_field: Name of the added row-index column.  Not added if the
            frame already has a column of that name.
        count_rows: Count the unfiltered rows up front and expose them as
            :attr:`row_count` (one ``select(pl.len())`` query).
        debug_log: Print timing for every request.
    """

    def __init__(
        self,
        lf: pl.LazyFrame,
        *,
        row_id_field: str = _ROW_ID_FIELD,
        count_rows: bool = True,
        debug_log: bool = False,
    ) -> None:
        self.lf = lf
        self.schema: pl.Schema = lf.collect_schema()
        self.row_id_field = row_id_field
        self.debug_log = debug_log
        self.row_count: int | None = lf.select(pl.len()).collect().item() if count_rows else None

    @classmethod
    def from_file(cls, path: Path, **kwargs: Any) -> "LazyFrameDataSource":
        return cls(scan_file(path), **kwargs)

    async def get_rows(self, request: FetchRequest) -> FetchResult:
        return await asyncio.to_thread(self._collect, request)

    def _collect(self, request: FetchRequest) -> FetchResult:
        t0 = time.perf_counter()
        lf = apply_filter_conditions(self.lf, request.column_filters, self.schema)
        total = lf.select(pl.len()).collect().item()
        lf = apply_sort_model(lf, request.sort_model, self.schema)

        length = max(request.end_row - request.start_row, 0)
        page_df: pl.DataFrame = lf.slice(request.start_row, length).collect()
        if self.row_id_field not in page_df.columns:
            page_df = page_df.with_row_index(self.row_id_field, offset=request.start_row)
        rows = _dataframe_to_dicts(page_df)

        if self.debug_log:
            elapsed_ms = (time.perf_counter() - t0) * 1000
            print(
                f"[LazyFrameDataSource] rows=[{request.start_row}, {request.end_row}), "
                f"slice={len(rows)}, total={total:,}, elapsed={elapsed_ms:.1f}ms"
            )
        return FetchResult(rows=rows, last_row_index=total - 1)
