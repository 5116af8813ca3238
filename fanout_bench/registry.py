"""Process-wide registry of every connection the engine opens."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, List, Tuple

from . import engine


class ConnectionRegistry:
    """Append-only, lock-guarded record of opened connections.

    Lifecycle managers open connections from many threads at once; the open
    hook lands here for each of them. Entries are never removed, so after a
    run ``len(registry)`` equals the number of successful opens.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handles: List[engine.StorageHandle] = []

    def register(self, handle: engine.StorageHandle) -> None:
        with self._lock:
            self._handles.append(handle)

    def snapshot(self) -> Tuple[engine.StorageHandle, ...]:
        with self._lock:
            return tuple(self._handles)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    @contextmanager
    def installed(self) -> Iterator["ConnectionRegistry"]:
        """Register every connection opened while the block runs."""
        with engine.connection_hook(self.register):
            yield self
