"""
Readers for staged artifacts.

Used for two things: expected record counts (known before any load starts)
and the document stream the document loader inserts.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import polars as pl
from bson import json_util


def count_csv_rows(path: Path, delimiter: str = "|") -> int:
    """Number of data rows in a staged CSV (header excluded)."""
    if path.stat().st_size == 0:
        return 0
    frame = pl.scan_csv(
        path,
        separator=delimiter,
        has_header=True,
        infer_schema=False,
        truncate_ragged_lines=True,
    )
    return int(frame.select(pl.len()).collect().item())


def iter_documents(path: Path) -> Iterator[dict[str, Any]]:
    """
    Yield documents from a staged JSON file.

    Accepts both layouts mongoimport does: one extended-JSON document per
    line, or a single JSON array.
    """
    text = path.read_text(encoding="utf-8")
    if text.lstrip().startswith("["):
        yield from json_util.loads(text)
        return
    for line in text.splitlines():
        line = line.strip()
        if line:
            yield json_util.loads(line)


def count_documents(path: Path) -> int:
    """Number of documents in a staged JSON file."""
    return sum(1 for _ in iter_documents(path))
