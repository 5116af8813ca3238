"""Write and read workloads against a single storage handle."""

from __future__ import annotations

import logging
import random
import string
from typing import Iterator, Optional, Tuple

import apsw

from .engine import StorageHandle
from .errors import QueryError, TransactionError

logger = logging.getLogger(__name__)

TABLE = "t"
SCHEMA_SQL = f"drop table if exists {TABLE}; create table {TABLE}(i int, str text);"
INSERT_SQL = f"insert into {TABLE} values(?, ?)"
SELECT_SQL = f"select i, str from {TABLE} where i < ?"

CHARSET = string.ascii_letters + string.digits


def random_string(length: int, rng: Optional[random.Random] = None) -> str:
    rng = rng or random
    return "".join(rng.choices(CHARSET, k=length))


def _batch_rows(
    start: int,
    count: int,
    min_len: int,
    max_len: int,
    rng: random.Random,
) -> Iterator[Tuple[int, str]]:
    for key in range(start, start + count):
        yield key, random_string(rng.randrange(min_len, max_len), rng)


def _rollback(handle: StorageHandle) -> None:
    try:
        handle.execute("rollback")
    except apsw.Error as exc:
        # SQLite already rolled back on its own for some failures.
        logger.debug("rollback after failed batch: %s", exc)


def populate(
    handle: StorageHandle,
    total_rows: int,
    batch_size: int,
    min_len: int,
    max_len: int,
    rng: Optional[random.Random] = None,
) -> int:
    """Insert ``total_rows`` rows of ``(i, random string)`` in batched transactions.

    Each batch is one transaction: begin, one prepared insert executed
    ``min(batch_size, remaining)`` times, finalize, commit. A failure anywhere
    in the batch rolls it back and raises :class:`TransactionError`; earlier
    batches stay committed. String lengths are drawn from
    ``[min_len, max_len)``.
    """
    if total_rows < 0:
        raise ValueError(f"total_rows must be >= 0 (got {total_rows})")
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1 (got {batch_size})")
    if min_len < 0 or max_len <= min_len:
        raise ValueError(f"string length range [{min_len}, {max_len}) is empty")
    rng = rng or random.Random()

    written = 0
    while written < total_rows:
        count = min(batch_size, total_rows - written)
        try:
            handle.execute("begin")
            cursor = handle.cursor()
            try:
                cursor.executemany(INSERT_SQL, _batch_rows(written, count, min_len, max_len, rng))
            finally:
                cursor.close()
            handle.execute("commit")
        except Exception as exc:
            _rollback(handle)
            raise TransactionError(
                f"batch at row {written} ({count} rows) failed on {handle.filename}: {exc}"
            ) from exc
        written += count
        logger.debug("committed %d/%d rows into %s", written, total_rows, handle.filename)
    return written


def scan(handle: StorageHandle, upper_bound: int) -> int:
    """Read every row with key below ``upper_bound``; return how many were read."""
    rows = 0
    try:
        cursor = handle.cursor()
    except apsw.Error as exc:
        raise QueryError(f"cannot open cursor on {handle.filename}: {exc}") from exc
    try:
        for key, value in cursor.execute(SELECT_SQL, (upper_bound,)):
            rows += 1
    except apsw.Error as exc:
        raise QueryError(f"scan below {upper_bound} failed on {handle.filename}: {exc}") from exc
    finally:
        cursor.close()
    return rows
