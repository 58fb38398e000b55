"""Value types shared by the cache engine, the data sources and the Reflex state.

All models are frozen dataclasses so that sort and filter state compare by
structure (``==`` is a deep comparison) and can be stored as the "previous"
value of a change detector as-is.

The ``to_dict`` / ``from_dict`` pairs produce and accept the camelCase wire
form used by JavaScript data sources::

    {"startRow": 0, "endRow": 100,
     "sortModel": [{"columnId": "age", "descending": True}],
     "columnFilters": [{"column": "age", "operator": "between",
                        "value": 25, "value2": 40}]}
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, get_args

Row = Any
"""A single row as produced by a data source (typically a ``dict``)."""

FilterDataType = Literal["string", "number", "date", "boolean", "enum"]

FilterOperator = Literal[
    "equals",
    "notEquals",
    "contains",
    "notContains",
    "startsWith",
    "endsWith",
    "isEmpty",
    "isNotEmpty",
    "greaterThan",
    "lessThan",
    "greaterThanOrEqual",
    "lessThanOrEqual",
    "between",
    "before",
    "after",
    "onOrBefore",
    "onOrAfter",
    "oneOf",
    "notOneOf",
]

FILTER_OPERATORS: tuple[str, ...] = get_args(FilterOperator)

VALUELESS_OPERATORS: frozenset[str] = frozenset({"isEmpty", "isNotEmpty"})

OPERATORS_BY_TYPE: dict[str, tuple[str, ...]] = {
    "string": (
        "equals",
        "notEquals",
        "contains",
        "notContains",
        "startsWith",
        "endsWith",
        "isEmpty",
        "isNotEmpty",
    ),
    "number": (
        "equals",
        "notEquals",
        "greaterThan",
        "lessThan",
        "greaterThanOrEqual",
        "lessThanOrEqual",
        "between",
        "isEmpty",
        "isNotEmpty",
    ),
    "date": (
        "equals",
        "notEquals",
        "before",
        "after",
        "onOrBefore",
        "onOrAfter",
        "between",
        "isEmpty",
        "isNotEmpty",
    ),
    "boolean": ("equals", "notEquals"),
    "enum": ("equals", "notEquals", "oneOf", "notOneOf", "isEmpty", "isNotEmpty"),
}

OPERATOR_LABELS: dict[str, str] = {
    "equals": "Equals",
    "notEquals": "Not equals",
    "contains": "Contains",
    "notContains": "Does not contain",
    "startsWith": "Starts with",
    "endsWith": "Ends with",
    "greaterThan": "Greater than",
    "lessThan": "Less than",
    "greaterThanOrEqual": "Greater than or equal",
    "lessThanOrEqual": "Less than or equal",
    "between": "Between",
    "before": "Before",
    "after": "After",
    "onOrBefore": "On or before",
    "onOrAfter": "On or after",
    "oneOf": "One of",
    "notOneOf": "Not one of",
    "isEmpty": "Is empty",
    "isNotEmpty": "Is not empty",
}


def _freeze(value: Any) -> Any:
    """Turn list values (``oneOf`` options) into tuples so conditions hash."""
    if isinstance(value, list):
        return tuple(value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, tuple):
        return list(value)
    return value


@dataclass(frozen=True)
class SortItem:
    """One entry of a sort model; the first entry has the highest priority."""

    column_id: str
    descending: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"columnId": self.column_id, "descending": self.descending}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SortItem":
        return cls(column_id=str(data["columnId"]), descending=bool(data.get("descending", False)))


@dataclass(frozen=True)
class FilterCondition:
    """A single column-scoped predicate.

    The cache engine never interprets ``operator``; it only compares
    conditions and forwards them to the data source.
    """

    column: str
    operator: str
    value: Any = None
    value2: Any = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _freeze(self.value))
        object.__setattr__(self, "value2", _freeze(self.value2))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "column": self.column,
            "operator": self.operator,
            "value": _thaw(self.value),
        }
        if self.value2 is not None:
            data["value2"] = _thaw(self.value2)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FilterCondition":
        return cls(
            column=str(data["column"]),
            operator=str(data["operator"]),
            value=data.get("value"),
            value2=data.get("value2"),
        )


@dataclass(frozen=True)
class FetchRequest:
    """Rows ``[start_row, end_row)`` under the given sort and filters."""

    start_row: int
    end_row: int
    sort_model: tuple[SortItem, ...] = ()
    column_filters: tuple[FilterCondition, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "startRow": self.start_row,
            "endRow": self.end_row,
            "sortModel": [s.to_dict() for s in self.sort_model],
            "columnFilters": [f.to_dict() for f in self.column_filters],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FetchRequest":
        return cls(
            start_row=int(data["startRow"]),
            end_row=int(data["endRow"]),
            sort_model=tuple(SortItem.from_dict(s) for s in data.get("sortModel") or []),
            column_filters=tuple(
                FilterCondition.from_dict(f) for f in data.get("columnFilters") or []
            ),
        )


@dataclass(frozen=True)
class FetchResult:
    """A successful answer from a data source.

    ``last_row_index`` is the absolute index of the last row of the whole
    sorted/filtered collection (``-1`` when nothing matches), or ``None``
    when the source does not know the total yet.
    """

    rows: Sequence[Row] = field(default_factory=tuple)
    last_row_index: int | None = None


def as_sort_model(sort_model: Iterable[SortItem | Mapping[str, Any]] | None) -> tuple[SortItem, ...]:
    """Normalise a sort model given as ``SortItem``s or wire dicts."""
    if not sort_model:
        return ()
    return tuple(s if isinstance(s, SortItem) else SortItem.from_dict(s) for s in sort_model)


def as_filters(
    filters: Iterable[FilterCondition | Mapping[str, Any]] | None,
) -> tuple[FilterCondition, ...]:
    """Normalise filter conditions given as ``FilterCondition``s or wire dicts.

    At most one condition per column survives: a later condition on a
    column replaces the earlier one and moves to the end.
    """
    if not filters:
        return ()
    normalised: tuple[FilterCondition, ...] = ()
    for f in filters:
        condition = f if isinstance(f, FilterCondition) else FilterCondition.from_dict(f)
        normalised = tuple(c for c in normalised if c.column != condition.column) + (condition,)
    return normalised
