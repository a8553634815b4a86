"""
Backend abstraction.

Each backend family supplies the same capabilities: a readiness probe,
schema provisioning, reset, bulk load and count. How a load is carried out
differs (bulk copy, drop-and-insert, script execution), so each backend
plans its own load units and the orchestrator only runs them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from functools import partial
from pathlib import Path

from nwlab.config import Settings, settings as default_settings
from nwlab.datasets.base import BackendKind, Entity
from nwlab.errors import ReferentialIntegrityError, SchemaError


@dataclass(frozen=True)
class LoadUnit:
    """One backend call that loads one or more entities."""

    entities: tuple[Entity, ...]
    run: Callable[[], int | None]

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(e.name for e in self.entities)


def dependency_order(entities: Iterable[Entity]) -> list[Entity]:
    """
    Order entities so every parent precedes the entities referencing it.

    Stable: entities with no ordering constraint keep their input order.
    References to entities outside ``entities`` are ignored.
    """
    pending = list(entities)
    names = {e.name for e in pending}
    placed: set[str] = set()
    ordered: list[Entity] = []

    while pending:
        for entity in pending:
            if (entity.parents & names) <= placed:
                ordered.append(entity)
                placed.add(entity.name)
                pending.remove(entity)
                break
        else:
            cycle = ", ".join(e.name for e in pending)
            raise SchemaError(f"foreign-key cycle between: {cycle}")

    return ordered


def check_load_order(order: Sequence[Entity], backend: str | None = None) -> None:
    """
    Reject a load order in which an entity precedes one it references.

    Raises:
        ReferentialIntegrityError: naming the first offending entity
    """
    names = {e.name for e in order}
    seen: set[str] = set()
    for entity in order:
        missing = sorted((entity.parents & names) - seen)
        if missing:
            raise ReferentialIntegrityError(
                f"loaded before referenced {', '.join(missing)}",
                backend=backend,
                entity=entity.name,
            )
        seen.add(entity.name)


class Backend(ABC):
    """A data store the orchestrator provisions and loads."""

    kind: BackendKind
    service: str  # docker compose service name
    concurrent_loads: bool = False

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or default_settings

    @property
    def name(self) -> str:
        return self.kind.value

    def staged(self, filename: str) -> Path:
        """Path of a staged file for this backend family."""
        return self.settings.staging_dir(self.kind.staging) / filename

    def entities(self, entities: Iterable[Entity]) -> list[Entity]:
        """The subset of ``entities`` that has a load job on this backend."""
        return [e for e in entities if e.served_by(self.kind)]

    # Readiness

    @abstractmethod
    def ping(self) -> bool:
        """Execute a trivial application-level command."""

    def ensure_namespace(self) -> None:
        """Create the database/namespace the entities live in."""

    def ping_namespace(self) -> bool:
        """Readiness of the target namespace once it exists."""
        return self.ping()

    # Schema

    def ensure_schema(self, entities: Sequence[Entity]) -> None:
        """Create missing tables/collections. No-op for schema-less stores."""

    @abstractmethod
    def reset(self, entities: Sequence[Entity]) -> None:
        """Empty every managed table/collection."""

    # Load + verify

    def plan_loads(self, entities: Sequence[Entity]) -> list[LoadUnit]:
        """Split the load into units; default is one unit per entity, in order."""
        return [LoadUnit((e,), partial(self.load, e)) for e in entities]

    def load(self, entity: Entity) -> int | None:
        """Load one entity, returning the number of records written if known."""
        raise NotImplementedError(f"{type(self).__name__} does not load per entity")

    @abstractmethod
    def count(self, entity: Entity) -> int:
        """Records currently stored for ``entity``."""

    @abstractmethod
    def expected_count(self, entity: Entity) -> int | None:
        """Records the staged source holds for ``entity`` (None if unknown)."""

    def close(self) -> None:
        """Release driver resources."""

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
