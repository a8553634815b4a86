"""
Backends the orchestrator provisions.

- postgres.py: tabular, COPY bulk load in foreign-key order
- mongo.py: document, drop-and-insert per collection
- graph.py: graph, Cypher build script execution
"""

from nwlab.backends.base import Backend, LoadUnit, check_load_order, dependency_order
from nwlab.backends.graph import GraphBackend
from nwlab.backends.mongo import MongoBackend
from nwlab.backends.postgres import PostgresBackend
from nwlab.config import Settings
from nwlab.datasets.base import BackendKind

BACKENDS: dict[BackendKind, type[Backend]] = {
    BackendKind.TABULAR: PostgresBackend,
    BackendKind.DOCUMENT: MongoBackend,
    BackendKind.GRAPH: GraphBackend,
}


def create_backend(kind: BackendKind, settings: Settings | None = None) -> Backend:
    """Instantiate the backend for ``kind``."""
    return BACKENDS[kind](settings)


__all__ = [
    "Backend",
    "BackendKind",
    "GraphBackend",
    "LoadUnit",
    "MongoBackend",
    "PostgresBackend",
    "check_load_order",
    "create_backend",
    "dependency_order",
]
