"""
Dataset declaration and staging.

- base.py: Entity / Column / Artifact / Normalization model
- catalog.py: the Northwind entities and where their files come from
- acquire.py: fetch + normalize + atomically publish staged files
- staged.py: read staged files back (expected counts, documents)
"""

from nwlab.datasets.acquire import Acquirer
from nwlab.datasets.base import Artifact, BackendKind, Column, Entity, Normalization, Source
from nwlab.datasets.catalog import ARTIFACTS, ENTITIES, artifacts_for, get_entity

__all__ = [
    "Acquirer",
    "Artifact",
    "BackendKind",
    "Column",
    "Entity",
    "Normalization",
    "Source",
    "ARTIFACTS",
    "ENTITIES",
    "artifacts_for",
    "get_entity",
]
