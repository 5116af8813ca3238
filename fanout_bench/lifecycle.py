"""Provisioning of one database instance: writer, populate, readers, scan."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from . import engine, workload
from .errors import CloseError, OpenError

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100
DEFAULT_MIN_LEN = 10
DEFAULT_MAX_LEN = 1000


@dataclass(frozen=True)
class WorkloadSettings:
    batch_size: int = DEFAULT_BATCH_SIZE
    min_len: int = DEFAULT_MIN_LEN
    max_len: int = DEFAULT_MAX_LEN


@dataclass
class InstanceCounters:
    rows_written: int = 0
    rows_scanned: int = 0
    readers: int = 0
    write_seconds: float = 0.0
    read_seconds: float = 0.0

    @property
    def rows_per_sec(self) -> float:
        if not self.write_seconds:
            return 0.0
        return self.rows_written / self.write_seconds


@dataclass
class CloseBundle:
    """Everything that has to be released for one instance, in release order.

    Readers close first, then the writer, then the storage location is
    removed. The bundle runs once; a second call raises :class:`CloseError`
    without touching any handle.
    """

    location: str
    writer: engine.StorageHandle
    readers: List[engine.StorageHandle] = field(default_factory=list)
    counters: InstanceCounters = field(default_factory=InstanceCounters)
    _closed: bool = field(default=False, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def handles(self) -> List[engine.StorageHandle]:
        return [*self.readers, self.writer]

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._lock:
            if self._closed:
                raise CloseError(f"instance at {self.location} is already closed")
            self._closed = True
        first_error: Optional[CloseError] = None
        for handle in self.handles:
            try:
                engine.close_handle(handle)
            except CloseError as exc:
                logger.error("%s", exc)
                first_error = first_error or exc
        try:
            shutil.rmtree(self.location)
        except OSError as exc:
            logger.error("cannot remove %s: %s", self.location, exc)
            first_error = first_error or CloseError(f"cannot remove {self.location}: {exc}")
        if first_error is not None:
            raise first_error


def _discard(location: str, handles: List[engine.StorageHandle]) -> None:
    for handle in reversed(handles):
        try:
            engine.close_handle(handle)
        except CloseError as exc:
            logger.warning("cleanup after failed provision: %s", exc)
    shutil.rmtree(location, ignore_errors=True)


def _run_readers(readers: List[engine.StorageHandle], upper_bound: int) -> int:
    futures: Dict[Future[int], int] = {}
    total = 0
    with ThreadPoolExecutor(max_workers=len(readers), thread_name_prefix="reader") as executor:
        for idx, handle in enumerate(readers, start=1):
            futures[executor.submit(workload.scan, handle, upper_bound)] = idx
        for future in as_completed(futures):
            total += future.result()
    return total


def provision(
    write_rows: int,
    reader_count: int,
    *,
    settings: WorkloadSettings = WorkloadSettings(),
    storage_root: Optional[str] = None,
) -> CloseBundle:
    """Create, populate and read-load one isolated database.

    Readers are opened only after every write batch has committed, then all
    scan concurrently up to ``write_rows``. Any failure closes what was opened,
    removes the storage location and propagates; no bundle is produced.
    """
    if write_rows < 0 or reader_count < 0:
        raise ValueError(f"write_rows and reader_count must be >= 0 (got {write_rows}, {reader_count})")
    try:
        location = tempfile.mkdtemp(prefix="fanout-", dir=storage_root)
    except OSError as exc:
        raise OpenError(f"cannot create storage location under {storage_root or tempfile.gettempdir()}: {exc}") from exc
    path = os.path.join(location, engine.DB_FILENAME)
    opened: List[engine.StorageHandle] = []
    counters = InstanceCounters(readers=reader_count)
    try:
        writer = engine.open_handle(path)
        opened.append(writer)
        engine.execute_schema(writer, workload.SCHEMA_SQL)

        t0 = time.perf_counter()
        counters.rows_written = workload.populate(
            writer, write_rows, settings.batch_size, settings.min_len, settings.max_len
        )
        counters.write_seconds = time.perf_counter() - t0
        logger.debug("%s: %d rows committed in %.2fs", location, counters.rows_written, counters.write_seconds)

        readers: List[engine.StorageHandle] = []
        for _ in range(reader_count):
            handle = engine.open_handle(path, read_only=True)
            opened.append(handle)
            readers.append(handle)

        if readers:
            t0 = time.perf_counter()
            counters.rows_scanned = _run_readers(readers, write_rows)
            counters.read_seconds = time.perf_counter() - t0
    except Exception:
        _discard(location, opened)
        raise
    return CloseBundle(location=location, writer=writer, readers=readers, counters=counters)
