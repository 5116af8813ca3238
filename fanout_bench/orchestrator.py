"""Fan-out across instances, aggregate once, hold until shutdown, tear down."""

from __future__ import annotations

import logging
import signal
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from contextlib import ExitStack
from typing import Dict, List, Optional, Sequence

from . import engine, report
from .config import HarnessConfig
from .errors import CloseError, ProvisioningError
from .lifecycle import CloseBundle, WorkloadSettings, provision
from .registry import ConnectionRegistry
from .stats import StatusReport, aggregate

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def provision_all(
    instance_count: int,
    write_rows: int,
    reader_count: int,
    *,
    settings: WorkloadSettings = WorkloadSettings(),
    storage_root: Optional[str] = None,
) -> List[CloseBundle]:
    """Provision ``instance_count`` independent databases in parallel.

    Bundles come back through the futures, in instance order. If any instance
    fails, the ones that succeeded are closed and :class:`ProvisioningError`
    is raised for the first failure seen.
    """
    futures: Dict[Future[CloseBundle], int] = {}
    bundles: Dict[int, CloseBundle] = {}
    failure: Optional[ProvisioningError] = None
    with ThreadPoolExecutor(max_workers=max(1, instance_count), thread_name_prefix="instance") as executor:
        for idx in range(1, instance_count + 1):
            future = executor.submit(
                provision,
                write_rows,
                reader_count,
                settings=settings,
                storage_root=storage_root,
            )
            futures[future] = idx
        for future in as_completed(futures):
            idx = futures[future]
            try:
                bundles[idx] = future.result()
            except Exception as exc:
                logger.error("Instance %02d failed: %s", idx, exc)
                failure = failure or ProvisioningError(idx, exc)
                continue
            logger.info("Instance %02d provisioned at %s", idx, bundles[idx].location)

    ordered = [bundles[idx] for idx in sorted(bundles)]
    if failure is not None:
        _close_after_failure(ordered)
        raise failure from failure.cause
    return ordered


def wait_for_shutdown(stop_event: Optional[threading.Event] = None) -> None:
    """Block until SIGINT/SIGTERM arrives or ``stop_event`` is set."""
    stop_event = stop_event or threading.Event()
    previous = {}

    def _handler(signum, _frame) -> None:
        logger.info("Received %s; shutting down", signal.Signals(signum).name)
        stop_event.set()

    in_main = threading.current_thread() is threading.main_thread()
    if in_main:
        for sig in SHUTDOWN_SIGNALS:
            previous[sig] = signal.signal(sig, _handler)
    try:
        logger.info("Waiting for interrupt or termination signal")
        while not stop_event.wait(0.5):
            pass
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def close_all(bundles: Sequence[CloseBundle]) -> None:
    """Close every bundle, even after a failure; raise the first error at the end."""
    errors: List[CloseError] = []
    for bundle in bundles:
        try:
            bundle.close()
        except CloseError as exc:
            logger.error("Close failed for %s: %s", bundle.location, exc)
            errors.append(exc)
    if errors:
        if len(errors) > 1:
            logger.error("%d of %d instance(s) failed to close", len(errors), len(bundles))
        raise errors[0]


def _close_after_failure(bundles: Sequence[CloseBundle]) -> None:
    try:
        close_all(bundles)
    except CloseError:
        pass  # already logged; the original failure is what gets raised


def run(
    config: HarnessConfig,
    stop_event: Optional[threading.Event] = None,
    registry: Optional[ConnectionRegistry] = None,
) -> StatusReport:
    """Provision, aggregate, report, wait for shutdown, close."""
    if registry is None:
        registry = ConnectionRegistry()
    start = time.perf_counter()
    with ExitStack() as hooks:
        if config.page_cache_bytes:
            layout = engine.configure_engine(config.page_cache_bytes)
            hooks.enter_context(engine.connection_hook(engine.page_cache_hook(layout)))
        hooks.enter_context(registry.installed())
        logger.info(
            "Provisioning %d instance(s) x %s rows, %d reader(s) each",
            config.instances,
            f"{config.write_rows:,}",
            config.readers,
        )
        bundles = provision_all(
            config.instances,
            config.write_rows,
            config.readers,
            settings=config.workload,
            storage_root=config.storage_root,
        )
    elapsed = time.perf_counter() - start
    logger.info("Provisioned %d instance(s), %d connection(s) in %.1fs", len(bundles), len(registry), elapsed)
    report.log_instance_summaries(bundles)

    try:
        status = aggregate(registry)
        report.log_report(status)
        report.write_artifacts(status, config, elapsed)
    except Exception:
        _close_after_failure(bundles)
        raise

    wait_for_shutdown(stop_event)
    close_all(bundles)
    logger.info("Closed %d instance(s)", len(bundles))
    return status
