"""Sum engine status counters across every registered connection."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Tuple

import apsw

from . import engine
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class CounterKind(enum.Enum):
    CACHE_USED = apsw.SQLITE_DBSTATUS_CACHE_USED
    LOOKASIDE_USED = apsw.SQLITE_DBSTATUS_LOOKASIDE_USED
    SCHEMA_USED = apsw.SQLITE_DBSTATUS_SCHEMA_USED
    STMT_USED = apsw.SQLITE_DBSTATUS_STMT_USED
    CACHE_SPILL = apsw.SQLITE_DBSTATUS_CACHE_SPILL


@dataclass(frozen=True)
class StatusReport:
    """Per-kind totals of the *current* counter value over all connections.

    ``samples`` keeps the per-connection values behind each total, in
    registry order, so the report can be broken down later.
    """

    totals: Mapping[CounterKind, int]
    connections: int
    samples: Mapping[CounterKind, Tuple[int, ...]] = field(default_factory=dict)
    memory: Mapping[str, int] = field(default_factory=dict)

    def __getitem__(self, kind: CounterKind) -> int:
        return self.totals[kind]

    def items(self) -> List[Tuple[CounterKind, int]]:
        return [(kind, self.totals[kind]) for kind in CounterKind]


def aggregate(registry: ConnectionRegistry) -> StatusReport:
    """Query all five counters on every registered connection and sum them.

    Any failed status call raises :class:`~fanout_bench.errors.StatusError`;
    a partial total would misreport the run.
    """
    handles = registry.snapshot()
    totals: Dict[CounterKind, int] = {kind: 0 for kind in CounterKind}
    samples: Dict[CounterKind, List[int]] = {kind: [] for kind in CounterKind}
    for handle in handles:
        for kind in CounterKind:
            current, _high_water = engine.db_status(handle, kind.value)
            totals[kind] += current
            samples[kind].append(current)
    logger.debug("aggregated %d counters over %d connections", len(CounterKind), len(handles))
    return StatusReport(
        totals=MappingProxyType(totals),
        connections=len(handles),
        samples=MappingProxyType({kind: tuple(values) for kind, values in samples.items()}),
        memory=MappingProxyType(engine.memory_stats()),
    )
