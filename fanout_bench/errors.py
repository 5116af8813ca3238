"""Error taxonomy for the harness.

Engine exceptions are always chained (``raise ... from exc``).
"""

from __future__ import annotations


class HarnessError(Exception):
    """Base class for every failure the harness raises on purpose."""


class OpenError(HarnessError):
    """A database handle could not be created or opened."""


class SchemaError(HarnessError):
    """Schema setup (DDL) failed before any workload ran."""


class TransactionError(HarnessError):
    """A write batch failed and was rolled back."""


class QueryError(HarnessError):
    """A read workload failed."""


class StatusError(HarnessError):
    """The engine refused a status-introspection call."""


class CloseError(HarnessError):
    """Teardown of a handle or storage location failed."""


class EngineConfigError(HarnessError):
    """Process-wide engine tuning could not be applied."""


class ProvisioningError(HarnessError):
    """One database instance failed while the fan-out was provisioning."""

    def __init__(self, instance: int, cause: BaseException) -> None:
        super().__init__(f"instance {instance} failed: {cause}")
        self.instance = instance
        self.cause = cause
