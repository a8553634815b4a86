"""
Graph backend: Neo4j.

Graph ingestion needs nodes before relationships, so the load is the
staged Cypher build script executed statement by statement rather than a
per-entity API. Verification counts nodes per label and relationships per
type against the CSV rows the script was built from.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from neo4j import Driver, GraphDatabase
from neo4j.exceptions import DriverError, Neo4jError

from nwlab.backends.base import Backend, LoadUnit
from nwlab.backends.cypher import split_statements
from nwlab.datasets.base import BackendKind, Entity
from nwlab.datasets.catalog import GRAPH_SCRIPT
from nwlab.datasets.staged import count_csv_rows
from nwlab.errors import LoadError, ResetError

logger = logging.getLogger(__name__)

# Re-running the build script re-issues its CREATE CONSTRAINT/INDEX statements
ALREADY_EXISTS = frozenset({
    "Neo.ClientError.Schema.EquivalentSchemaRuleAlreadyExists",
    "Neo.ClientError.Schema.ConstraintAlreadyExists",
    "Neo.ClientError.Schema.IndexAlreadyExists",
})


def _quote(name: str) -> str:
    """Escape a label or relationship type for use in a query."""
    return "`" + name.replace("`", "``") + "`"


class GraphBackend(Backend):
    """Script-execute loader for Neo4j."""

    kind = BackendKind.GRAPH
    service = "neo4j"

    def __init__(self, settings=None, driver: Driver | None = None):
        super().__init__(settings)
        self._driver = driver

    @property
    def driver(self) -> Driver:
        if self._driver is None:
            self._driver = GraphDatabase.driver(
                self.settings.neo4j_uri,
                auth=(self.settings.neo4j_user, self.settings.neo4j_password),
                connection_timeout=self.settings.connect_timeout,
            )
        return self._driver

    def _session(self):
        return self.driver.session(database=self.settings.neo4j_database)

    def ping(self) -> bool:
        with self._session() as session:
            session.run("RETURN 1 AS ok").single()
        return True

    def reset(self, entities: Sequence[Entity]) -> None:
        """Remove every node and relationship."""
        try:
            with self._session() as session:
                session.run("MATCH (n) DETACH DELETE n").consume()
        except (Neo4jError, DriverError) as exc:
            raise ResetError(f"delete failed: {exc}", backend=self.name) from exc

    def plan_loads(self, entities: Sequence[Entity]) -> list[LoadUnit]:
        """A single unit: the build script creates every entity at once."""
        if not entities:
            return []
        return [LoadUnit(tuple(entities), self.run_script)]

    def run_script(self) -> None:
        """Execute the staged build script, stopping at the first failing statement."""
        path = self.staged(GRAPH_SCRIPT)
        try:
            script = split_statements(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise LoadError(f"cannot read {path}: {exc}", backend=self.name) from exc

        for directive in script.skipped_directives:
            logger.debug("skipping shell directive %s", directive)
        total = len(script.statements)
        if not total:
            raise LoadError(f"{path.name} contains no statements", backend=self.name)

        index = 0
        try:
            with self._session() as session:
                for index, statement in enumerate(script.statements, 1):
                    try:
                        session.run(statement).consume()
                    except Neo4jError as exc:
                        if exc.code in ALREADY_EXISTS:
                            logger.debug("statement %d: %s", index, exc.code)
                            continue
                        raise
        except Neo4jError as exc:
            raise LoadError(
                f"statement {index}/{total} failed ({exc.code}): {exc.message}",
                backend=self.name,
            ) from exc
        except DriverError as exc:
            raise LoadError(f"statement {index}/{total} failed: {exc}", backend=self.name) from exc

        logger.debug("executed %d statements from %s", total, path.name)

    def count(self, entity: Entity) -> int:
        if entity.graph_label:
            query = f"MATCH (n:{_quote(entity.graph_label)}) RETURN count(n) AS c"
        else:
            query = f"MATCH ()-[r:{_quote(entity.graph_relationship)}]->() RETURN count(r) AS c"
        with self._session() as session:
            return session.run(query).single()["c"]

    def expected_count(self, entity: Entity) -> int | None:
        return count_csv_rows(self.staged(entity.csv_file), entity.delimiter)

    def close(self) -> None:
        if self._driver is not None:
            self._driver.close()
            self._driver = None
