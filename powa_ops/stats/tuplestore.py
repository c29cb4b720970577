"""
Materialized result sets: the caller-side contract (ReturnSetInfo) and the
row buffer handed back whole (TupleSink).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Flag
from typing import Any, Iterator, Optional, Sequence

from .models import COLUMNS_BY_KIND, StatKind


class ReturnMode(Flag):
    VALUE_PER_CALL = 1
    MATERIALIZE = 2


@dataclass(frozen=True)
class TupleDesc:
    """Row type declared by the caller."""
    columns: tuple[str, ...]

    @property
    def natts(self) -> int:
        return len(self.columns)


class TupleSink:
    """Append-only, write-once buffer of rows matching one TupleDesc."""

    def __init__(self, desc: TupleDesc):
        self.desc = desc
        self._rows: list[tuple] = []
        self._done = False

    def put_values(self, values: Sequence[Any]) -> None:
        if self._done:
            raise AssertionError("tuple sink is already done storing")
        if len(values) != self.desc.natts:
            raise AssertionError(
                f"row has {len(values)} values, tuple descriptor declares {self.desc.natts}"
            )
        self._rows.append(tuple(values))

    def done_storing(self) -> None:
        self._done = True

    @property
    def done(self) -> bool:
        return self._done

    @property
    def rows(self) -> tuple[tuple, ...]:
        return tuple(self._rows)

    def as_dicts(self) -> list[dict]:
        return [dict(zip(self.desc.columns, row)) for row in self._rows]

    def __iter__(self) -> Iterator[tuple]:
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self._rows)


@dataclass
class ReturnSetInfo:
    """
    What the caller can accept, and where the result is delivered.

    `expected_desc` is None when the caller's declared return type is not a
    row type.
    """
    allowed_modes: ReturnMode
    expected_desc: Optional[TupleDesc]
    return_mode: Optional[ReturnMode] = None
    set_result: Optional[TupleSink] = None
    set_desc: Optional[TupleDesc] = None


def materialize_rsinfo(kind: StatKind) -> ReturnSetInfo:
    """Caller context accepting a materialized set of `kind` rows."""
    return ReturnSetInfo(
        allowed_modes=ReturnMode.MATERIALIZE,
        expected_desc=TupleDesc(COLUMNS_BY_KIND[kind]),
    )
