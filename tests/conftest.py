"""
Shared test configuration and fixtures.

Provides a recording data source whose fetches can be held open and
released one by one, so tests control completion order.
"""

import asyncio
import datetime as dt

import polars as pl
import pytest

from reflex_infinite_grid.models import FetchRequest, FetchResult


class RecordingDataSource:
    """
    Fake paginated source serving rows ``{"id": i, "filters": n, "sorts": m}``.

    ``filters`` / ``sorts`` echo how many conditions the request carried, so
    a test can tell which request produced an installed block.
    """

    def __init__(
        self,
        total_rows: int = 1000,
        *,
        report_total: bool = True,
        row_count: int | None = None,
        hold: bool = False,
    ):
        self.total_rows = total_rows
        self.report_total = report_total
        self.row_count = row_count
        self.hold = hold
        self.failing_starts: set[int] = set()
        self.requests: list[FetchRequest] = []
        self._gates: list[asyncio.Event] = []

    @property
    def requested_starts(self) -> list[int]:
        return [r.start_row for r in self.requests]

    def release(self, index: int | None = None) -> None:
        """Let request *index* (or every request so far) complete."""
        if index is None:
            for gate in self._gates:
                gate.set()
        else:
            self._gates[index].set()

    async def get_rows(self, request: FetchRequest) -> FetchResult:
        self.requests.append(request)
        gate = asyncio.Event()
        self._gates.append(gate)
        if self.hold:
            await gate.wait()
        else:
            await asyncio.sleep(0)

        if request.start_row in self.failing_starts:
            raise RuntimeError(f"backend unavailable for row {request.start_row}")

        stop = min(request.end_row, self.total_rows)
        rows = [
            {
                "id": i,
                "filters": len(request.column_filters),
                "sorts": len(request.sort_model),
            }
            for i in range(request.start_row, stop)
        ]
        last_row_index = self.total_rows - 1 if self.report_total else None
        return FetchResult(rows=rows, last_row_index=last_row_index)


async def settle(rounds: int = 5) -> None:
    """Give scheduled tasks a few event-loop turns to run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def make_source():
    """Factory for :class:`RecordingDataSource` instances."""
    return RecordingDataSource


PEOPLE_COUNT = 300
STATUSES = ["active", "inactive", "pending"]


def people_frame(count: int = PEOPLE_COUNT) -> pl.DataFrame:
    """Deterministic people table used by the polars and CLI tests."""
    return pl.DataFrame(
        {
            "id": list(range(1, count + 1)),
            "name": [f"Person {i + 1}" for i in range(count)],
            "age": [22 + (i % 45) for i in range(count)],
            "status": [STATUSES[i % 3] for i in range(count)],
            "salary": [40000.0 + (i % 200) * 40 for i in range(count)],
            "start_date": [dt.date(2020 + (i % 4), (i % 12) + 1, (i % 28) + 1) for i in range(count)],
            "is_manager": [i % 7 == 0 for i in range(count)],
            "email": [None if i % 10 == 0 else f"person{i + 1}@example.com" for i in range(count)],
        }
    )


@pytest.fixture
def people() -> pl.DataFrame:
    return people_frame()


@pytest.fixture(name="settle")
def settle_fixture():
    return settle
