"""
Declarative dataset model.

An Entity is one logical dataset ("customers", "orders", ...) that is staged
once per backend family: delimited text for the tabular backend, JSON
records for the document backend and a Cypher script (plus the CSV it
mirrors) for the graph backend.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath


class BackendKind(str, Enum):
    """Backend families, each with its own staging directory."""

    TABULAR = "tabular"
    DOCUMENT = "document"
    GRAPH = "graph"

    @property
    def staging(self) -> str:
        return {
            BackendKind.TABULAR: "postgres",
            BackendKind.DOCUMENT: "mongo",
            BackendKind.GRAPH: "neo4j",
        }[self]


@dataclass(frozen=True)
class Column:
    """A column of a tabular entity."""

    name: str
    type: str
    nullable: bool = True
    references: str | None = None  # "<entity>.<column>"
    default: str | None = None

    @property
    def parent(self) -> str | None:
        """Entity this column references, if any."""
        if self.references is None:
            return None
        return self.references.split(".", 1)[0]


@dataclass(frozen=True)
class Entity:
    """A logical dataset and its physical encodings."""

    name: str
    columns: tuple[Column, ...]
    primary_key: tuple[str, ...]
    csv_file: str
    json_file: str | None = None
    delimiter: str = "|"
    null_token: str | None = None
    graph_label: str | None = None  # node entities
    graph_relationship: str | None = None  # relationship entities

    @property
    def parents(self) -> frozenset[str]:
        """Entities this one references through foreign keys."""
        return frozenset(c.parent for c in self.columns if c.parent and c.parent != self.name)

    def served_by(self, kind: BackendKind) -> bool:
        """Whether this entity has a load job on the given backend."""
        if kind is BackendKind.DOCUMENT:
            return self.json_file is not None
        if kind is BackendKind.GRAPH:
            return self.graph_label is not None or self.graph_relationship is not None
        return True


@dataclass(frozen=True)
class Normalization:
    """Text normalization applied to a staged artifact."""

    strip_cr: bool = True
    strip_trailing_separator: str | None = None
    encodings: tuple[str, ...] = ("utf-8-sig", "cp1252")

    def apply(self, raw: bytes) -> bytes:
        """Decode, clean and re-encode as UTF-8 with ``\\n`` terminators."""
        text = None
        for encoding in self.encodings:
            try:
                text = raw.decode(encoding)
                break
            except UnicodeDecodeError:
                continue
        if text is None:
            raise UnicodeDecodeError(self.encodings[-1], raw, 0, len(raw), "no encoding matched")

        if self.strip_cr:
            text = text.replace("\r\n", "\n").replace("\r", "\n")

        lines = text.split("\n")
        sep = self.strip_trailing_separator
        # Only a separator that terminates every record is an artifact;
        # a lone trailing one is an empty last field.
        if sep and all(line.endswith(sep) for line in lines if line):
            lines = [line[: -len(sep)] if line else line for line in lines]

        body = "\n".join(lines).rstrip("\n")
        return (body + "\n").encode("utf-8") if body else b""


@dataclass(frozen=True)
class Source:
    """A remote location holding one or more source files."""

    key: str
    url: str
    archive: bool = False


@dataclass(frozen=True)
class Artifact:
    """One staged file: where it comes from and where it is published."""

    source: Source
    destination: str  # relative to data_dir, e.g. "postgres/customers.csv"
    kind: BackendKind
    member: str | None = None  # path inside the source archive
    normalization: Normalization = field(default_factory=Normalization)

    @property
    def name(self) -> str:
        return PurePosixPath(self.destination).name
