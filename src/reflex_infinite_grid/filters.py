"""Helpers for the ordered, one-per-column filter condition collection.

Every function takes and returns immutable tuples of
:class:`~reflex_infinite_grid.models.FilterCondition`; nothing is edited in
place, so a tuple already handed to the cache engine keeps comparing equal
to itself.
"""

from collections.abc import Mapping
from typing import Any

from reflex_infinite_grid.models import (
    FILTER_OPERATORS,
    VALUELESS_OPERATORS,
    FilterCondition,
    SortItem,
)

Filters = tuple[FilterCondition, ...]


def add_filter_condition(filters: Filters, condition: FilterCondition) -> Filters:
    """Append *condition*, dropping any existing condition on the same column."""
    return remove_filter_condition(filters, condition.column) + (condition,)


def update_filter_condition(
    filters: Filters,
    column: str,
    operator: str,
    value: Any,
    value2: Any = None,
) -> Filters:
    """Build a condition from parts and add it (see :func:`add_filter_condition`)."""
    return add_filter_condition(
        filters,
        FilterCondition(column=column, operator=operator, value=value, value2=value2),
    )


def remove_filter_condition(filters: Filters, column: str) -> Filters:
    return tuple(c for c in filters if c.column != column)


def get_filter_condition(filters: Filters, column: str) -> FilterCondition | None:
    for condition in filters:
        if condition.column == column:
            return condition
    return None


def has_active_filter(filters: Filters, column: str) -> bool:
    return get_filter_condition(filters, column) is not None


def clear_all_filters() -> Filters:
    return ()


def get_active_filter_count(filters: Filters) -> int:
    return len(filters)


def is_valid_filter_condition(condition: FilterCondition) -> bool:
    """Return ``True`` if *condition* is complete enough to send to a data source.

    A column and a known operator are required; every operator except
    ``isEmpty`` / ``isNotEmpty`` needs a value, and ``between`` also needs
    ``value2``.
    """
    if not condition.column or condition.operator not in FILTER_OPERATORS:
        return False
    if condition.operator not in VALUELESS_OPERATORS and condition.value is None:
        return False
    if condition.operator == "between" and condition.value2 is None:
        return False
    return True


def _join(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


_DESCRIPTIONS: dict[str, str] = {
    "equals": '{column} equals "{value}"',
    "notEquals": '{column} does not equal "{value}"',
    "contains": '{column} contains "{value}"',
    "notContains": '{column} does not contain "{value}"',
    "startsWith": '{column} starts with "{value}"',
    "endsWith": '{column} ends with "{value}"',
    "greaterThan": "{column} > {value}",
    "lessThan": "{column} < {value}",
    "greaterThanOrEqual": "{column} >= {value}",
    "lessThanOrEqual": "{column} <= {value}",
    "between": "{column} between {value} and {value2}",
    "before": "{column} before {value}",
    "after": "{column} after {value}",
    "onOrBefore": "{column} on or before {value}",
    "onOrAfter": "{column} on or after {value}",
    "oneOf": "{column} is one of: {value}",
    "notOneOf": "{column} is not one of: {value}",
    "isEmpty": "{column} is empty",
    "isNotEmpty": "{column} is not empty",
}


def get_filter_description(condition: FilterCondition) -> str:
    """Return a one-line human-readable description of *condition*.

    Examples:
        ``age between 25 and 40``, ``status is one of: active, pending``
    """
    template = _DESCRIPTIONS.get(condition.operator, "{column} {operator} {value}")
    return template.format(
        column=condition.column,
        operator=condition.operator,
        value=_join(condition.value),
        value2=_join(condition.value2),
    )


# ---------------------------------------------------------------------------
# MUI DataGrid models
# ---------------------------------------------------------------------------

_MUI_OPERATORS: dict[str, str] = {
    "=": "equals",
    "is": "equals",
    "!=": "notEquals",
    "not": "notEquals",
    "doesNotEqual": "notEquals",
    "doesNotContain": "notContains",
    ">": "greaterThan",
    ">=": "greaterThanOrEqual",
    "<": "lessThan",
    "<=": "lessThanOrEqual",
    "isAnyOf": "oneOf",
}


def filter_condition_from_mui(item: Mapping[str, Any]) -> FilterCondition | None:
    """Translate one MUI ``filterModel`` item into a :class:`FilterCondition`.

    MUI operator spellings (``">"``, ``"is"``, ``"isAnyOf"``, ...) are mapped
    onto the native operator set; native names pass through.  Returns
    ``None`` for items without a field or with an unknown operator.
    """
    field = item.get("field")
    raw_operator = item.get("operator")
    if not field or not raw_operator:
        return None
    operator = _MUI_OPERATORS.get(raw_operator, raw_operator)
    if operator not in FILTER_OPERATORS:
        return None
    return FilterCondition(
        column=str(field),
        operator=operator,
        value=item.get("value"),
        value2=item.get("value2"),
    )


def sort_model_from_mui(sort_model: list[Mapping[str, Any]]) -> tuple[SortItem, ...]:
    """Translate a MUI ``sortModel`` (``[{"field": ..., "sort": "asc"|"desc"}]``)."""
    items: list[SortItem] = []
    for entry in sort_model:
        field = entry.get("field")
        if not field:
            continue
        items.append(SortItem(column_id=str(field), descending=entry.get("sort") == "desc"))
    return tuple(items)


def merge_mui_filter_model(existing: Filters, incoming: Mapping[str, Any]) -> Filters:
    """Merge a MUI filter model into the accumulated conditions.

    MUI DataGrid Community edition only sends one filter item at a time.
    Each incoming item is merged by column:

    * Item **has a value** (or a valueless operator) → upsert.
    * Item **has no value** and the column already has a condition → keep
      the condition, adopting the new operator if it changed (the user is
      editing the operator dropdown).
    * Item **has no value** and the column is new → ignore.
    * Incoming items list is **empty** → clear all conditions.
    """
    incoming_items: list[Mapping[str, Any]] = list(incoming.get("items") or [])
    if not incoming_items:
        return clear_all_filters()

    merged = existing
    for item in incoming_items:
        condition = filter_condition_from_mui(item)
        if condition is None:
            continue
        has_value = condition.value is not None or condition.operator in VALUELESS_OPERATORS
        if has_value:
            merged = add_filter_condition(merged, condition)
            continue
        current = get_filter_condition(merged, condition.column)
        if current is not None and current.operator != condition.operator:
            merged = add_filter_condition(
                merged,
                FilterCondition(
                    column=current.column,
                    operator=condition.operator,
                    value=current.value,
                    value2=current.value2,
                ),
            )
    return merged
