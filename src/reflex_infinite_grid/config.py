"""Cache configuration for :class:`~reflex_infinite_grid.datasource.InfiniteDataSource`."""

from dataclasses import dataclass, field
from typing import Any

from reflex_infinite_grid.models import FilterCondition, SortItem, as_filters, as_sort_model

_DEFAULT_CACHE_BLOCK_SIZE: int = 100
_DEFAULT_MAX_BLOCKS_IN_CACHE: int = 10
_DEFAULT_CACHE_OVERFLOW_SIZE: int = 1


@dataclass(frozen=True)
class CacheOptions:
    """Options fixed for the lifetime of one data-source session.

    Args:
        cache_block_size: Rows per block.  Block boundaries derive from it,
            so it cannot change once the session exists.
        max_blocks_in_cache: Maximum resident blocks (at least 1).
        cache_overflow_size: Extra blocks prefetched on each side of the
            visible range.
        default_sort: Initial sort model.
        default_filters: Initial filter conditions.
        discard_stale_loads: Drop completions of loads issued before the
            last sort/filter invalidation instead of installing them.
        debug_log: Print a diagnostic line for each load and invalidation.
    """

    cache_block_size: int = _DEFAULT_CACHE_BLOCK_SIZE
    max_blocks_in_cache: int = _DEFAULT_MAX_BLOCKS_IN_CACHE
    cache_overflow_size: int = _DEFAULT_CACHE_OVERFLOW_SIZE
    default_sort: tuple[SortItem, ...] = field(default_factory=tuple)
    default_filters: tuple[FilterCondition, ...] = field(default_factory=tuple)
    discard_stale_loads: bool = True
    debug_log: bool = False

    def __post_init__(self) -> None:
        _require_int("cache_block_size", self.cache_block_size, minimum=1)
        _require_int("max_blocks_in_cache", self.max_blocks_in_cache, minimum=1)
        _require_int("cache_overflow_size", self.cache_overflow_size, minimum=0)
        # Accept lists and wire dicts; the session compares tuples.
        object.__setattr__(self, "default_sort", as_sort_model(self.default_sort))
        object.__setattr__(self, "default_filters", as_filters(self.default_filters))

    def replace(self, **overrides: Any) -> "CacheOptions":
        """Return a copy with *overrides* applied (and validated)."""
        values = {name: getattr(self, name) for name in self.__dataclass_fields__}
        unknown = set(overrides) - set(values)
        if unknown:
            raise ValueError(f"Unknown cache option(s): {', '.join(sorted(unknown))}")
        values.update(overrides)
        return CacheOptions(**values)


def _require_int(name: str, value: Any, *, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
