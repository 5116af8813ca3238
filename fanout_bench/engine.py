"""Narrow binding to the SQLite engine (via apsw).

Everything the harness needs from the engine goes through this module:
opening handles, running DDL, closing, the open-time connection hook,
per-connection status introspection and process-wide tuning. Engine
exceptions are translated into the harness taxonomy here so the layers above
never import apsw directly.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Tuple

import apsw

from .errors import CloseError, EngineConfigError, OpenError, SchemaError, StatusError

logger = logging.getLogger(__name__)

DB_FILENAME = "db"
DEFAULT_PAGE_SIZE = 4096

StorageHandle = apsw.Connection
ConnectionCallback = Callable[[apsw.Connection], None]


def open_handle(path: str, read_only: bool = False) -> apsw.Connection:
    """Open one connection; every installed connection hook fires on success."""
    if read_only:
        flags = apsw.SQLITE_OPEN_READONLY
    else:
        flags = apsw.SQLITE_OPEN_READWRITE | apsw.SQLITE_OPEN_CREATE
    try:
        return apsw.Connection(path, flags=flags)
    except apsw.Error as exc:
        mode = "read-only" if read_only else "read-write"
        raise OpenError(f"cannot open {path} ({mode}): {exc}") from exc


def execute_schema(handle: apsw.Connection, statements: str) -> None:
    try:
        handle.execute(statements)
    except apsw.Error as exc:
        raise SchemaError(f"schema setup failed on {handle.filename}: {exc}") from exc


def close_handle(handle: apsw.Connection) -> None:
    try:
        handle.close()
    except apsw.Error as exc:
        raise CloseError(f"cannot close {handle.filename}: {exc}") from exc


@contextmanager
def connection_hook(callback: ConnectionCallback) -> Iterator[None]:
    """Invoke ``callback`` with every connection opened while the block runs."""
    apsw.connection_hooks.append(callback)
    try:
        yield
    finally:
        apsw.connection_hooks.remove(callback)


def db_status(handle: apsw.Connection, op: int) -> Tuple[int, int]:
    """Return ``(current, high_water)`` for one ``SQLITE_DBSTATUS_*`` counter."""
    try:
        current, high_water = handle.status(op, False)
    except apsw.Error as exc:
        raise StatusError(f"db status {op} failed: {exc}") from exc
    return int(current), int(high_water)


def memory_stats() -> Dict[str, int]:
    """Engine-wide allocator figures (all connections, all threads)."""
    return {
        "memory_used": int(apsw.memory_used()),
        "memory_high_water": int(apsw.memory_high_water(False)),
    }


@dataclass(frozen=True)
class PageCacheLayout:
    budget_bytes: int
    page_size: int
    header_size: int

    @property
    def slot_size(self) -> int:
        return self.page_size + self.header_size

    @property
    def slots(self) -> int:
        return self.budget_bytes // self.slot_size

    @property
    def cache_size_kib(self) -> int:
        return max(1, (self.slots * self.page_size) // 1024)


def configure_engine(page_cache_bytes: int, page_size: int = DEFAULT_PAGE_SIZE) -> PageCacheLayout:
    """Size the page cache before the first connection is opened.

    SQLite only accepts configuration before it initializes, so this must run
    ahead of any ``open_handle`` call in the process. apsw cannot pass a
    caller-owned buffer to ``SQLITE_CONFIG_PAGECACHE``; the computed layout is
    applied per connection by :func:`page_cache_hook` instead.
    """
    if page_cache_bytes <= 0:
        raise EngineConfigError(f"page cache budget must be positive (got {page_cache_bytes})")
    if "THREADSAFE=0" in apsw.compile_options:
        raise EngineConfigError("sqlite was compiled without thread safety")
    try:
        header_size = apsw.config(apsw.SQLITE_CONFIG_PCACHE_HDRSZ)
    except apsw.Error as exc:
        raise EngineConfigError(f"cannot read page cache header size: {exc}") from exc
    layout = PageCacheLayout(
        budget_bytes=page_cache_bytes,
        page_size=page_size,
        header_size=int(header_size),
    )
    if layout.slots < 1:
        raise EngineConfigError(
            f"page cache budget {page_cache_bytes} is smaller than one slot ({layout.slot_size} bytes)"
        )
    logger.info(
        "Page cache layout: %d slots x %d bytes (header %d), %d KiB per connection",
        layout.slots,
        layout.slot_size,
        layout.header_size,
        layout.cache_size_kib,
    )
    return layout


def page_cache_hook(layout: PageCacheLayout) -> ConnectionCallback:
    def apply(handle: apsw.Connection) -> None:
        handle.execute(f"pragma cache_size=-{layout.cache_size_kib}")

    return apply
