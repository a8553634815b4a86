"""
Error taxonomy for provisioning runs.

Every error carries the backend, entity and stage it belongs to so the
final run table can point at what to re-run with ``--backend``.

    ProvisionError
    ├── AcquisitionError       fatal to the whole run
    ├── BringUpError           fatal to one backend pipeline
    ├── ReadinessTimeout       fatal to one backend pipeline
    ├── SchemaError            fatal to one backend pipeline
    ├── ResetError             fatal to one backend pipeline
    ├── LoadError              fatal to one load job
    │   └── ReferentialIntegrityError
    ├── CountMismatch          marks one load job failed
    ├── Cancelled              operator interrupt
    └── InvalidTransition      illegal job state change
"""

from __future__ import annotations


class ProvisionError(Exception):
    """Base class for all provisioning errors."""

    stage: str | None = None

    def __init__(
        self,
        message: str,
        *,
        backend: str | None = None,
        entity: str | None = None,
        stage: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.backend = backend
        self.entity = entity
        if stage is not None:
            self.stage = stage

    def describe(self) -> str:
        """One-line description with whatever context is known."""
        where = "/".join(p for p in (self.backend, self.entity, self.stage) if p)
        if where:
            return f"[{where}] {self.message}"
        return self.message

    def __str__(self) -> str:
        return self.describe()


class AcquisitionError(ProvisionError):
    """Source data could not be fetched, extracted or normalized."""

    stage = "acquire"


class BringUpError(ProvisionError):
    """The container runtime refused to start a backend service."""

    stage = "bring-up"


class ReadinessTimeout(ProvisionError):
    """A backend never accepted application-level commands."""

    stage = "ready"

    def __init__(self, message: str, *, attempts: int, last_error: BaseException | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.attempts = attempts
        self.last_error = last_error


class SchemaError(ProvisionError):
    stage = "schema"


class ResetError(ProvisionError):
    stage = "reset"


class LoadError(ProvisionError):
    """A bulk load failed; recovery is a full re-run."""

    stage = "load"


class ReferentialIntegrityError(LoadError):
    """A dependent entity was loaded before the entity it references."""


class CountMismatch(ProvisionError):
    """Observed record count differs from the staged source count."""

    stage = "verify"

    def __init__(self, entity: str, expected: int, observed: int, *, backend: str | None = None):
        delta = observed - expected
        super().__init__(
            f"expected {expected:,} records, found {observed:,} ({delta:+,})",
            backend=backend,
            entity=entity,
        )
        self.expected = expected
        self.observed = observed
        self.delta = delta


class Cancelled(ProvisionError):
    """Raised at a stage boundary once cancellation was requested."""


class InvalidTransition(ProvisionError):
    """A load job was moved along an edge its state machine does not have."""
