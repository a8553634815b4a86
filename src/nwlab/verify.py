"""
Post-load verification.

Counts every loaded entity and compares it with the count taken from the
staged source before the load. Mismatches are reported per entity with the
exact delta so it is obvious which load step under- or over-populated.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from nwlab.backends.base import Backend
from nwlab.datasets.base import Entity
from nwlab.errors import CountMismatch, ProvisionError

logger = logging.getLogger(__name__)


@dataclass
class Verification:
    """Per-entity verification result."""

    observed: dict[str, int] = field(default_factory=dict)
    mismatches: dict[str, CountMismatch] = field(default_factory=dict)
    errors: dict[str, ProvisionError] = field(default_factory=dict)
    unverified: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.mismatches and not self.errors

    def failure(self, entity: str) -> ProvisionError | None:
        """The failure recorded for ``entity``, if any."""
        return self.mismatches.get(entity) or self.errors.get(entity)


def verify(
    backend: Backend,
    entities: Sequence[Entity],
    expected: Mapping[str, int | None],
) -> Verification:
    """
    Count ``entities`` on ``backend`` and compare with ``expected``.

    Entities whose expectation is None are counted but not judged.
    """
    result = Verification()
    for entity in entities:
        try:
            observed = backend.count(entity)
        except Exception as exc:  # driver errors
            result.errors[entity.name] = ProvisionError(
                f"count failed: {exc}", backend=backend.name, entity=entity.name, stage="verify"
            )
            continue

        result.observed[entity.name] = observed
        want = expected.get(entity.name)
        if want is None:
            result.unverified.append(entity.name)
            logger.debug("%s/%s: %d records (no expectation)", backend.name, entity.name, observed)
        elif observed != want:
            result.mismatches[entity.name] = CountMismatch(
                entity.name, want, observed, backend=backend.name
            )
        else:
            logger.debug("%s/%s: %d records verified", backend.name, entity.name, observed)

    return result
