"""
Dataset acquirer.

Fetches the Northwind sources into the staging tree:

    data/postgres/*.csv       tabular backend
    data/mongo/*.json         document backend
    data/neo4j/*.csv, *.cypher  graph backend

A staged file is either fully present and normalized or absent. Files are
written to a temporary name in the destination directory and moved into
place with ``os.replace``, so an interrupted run never leaves a partial
artifact behind. Existing files are never re-fetched unless forced.
"""

from __future__ import annotations

import logging
import os
import tempfile
import zipfile
from collections.abc import Iterable
from pathlib import Path

import httpx
from rich.console import Console
from rich.table import Table
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from nwlab.config import settings
from nwlab.datasets.base import Artifact, Source
from nwlab.errors import AcquisitionError

console = Console()
logger = logging.getLogger(__name__)


def _is_transient(exc: BaseException) -> bool:
    """Network hiccups and server-side errors are worth another try."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, httpx.TransportError)


class Acquirer:
    """Stage source files for one or more backend families."""

    def __init__(self, data_dir: Path | None = None, client: httpx.Client | None = None):
        self.data_dir = Path(data_dir) if data_dir is not None else settings.data_dir
        self._client = client

    def staged_path(self, artifact: Artifact) -> Path:
        return self.data_dir / artifact.destination

    def missing(self, artifacts: Iterable[Artifact]) -> list[Artifact]:
        """Artifacts whose staged file does not exist yet."""
        return [a for a in artifacts if not self.staged_path(a).exists()]

    def require_staged(self, artifacts: Iterable[Artifact]) -> dict[Artifact, Path]:
        """
        Check that every artifact is already staged, without touching the network.

        Raises:
            AcquisitionError: if any artifact is missing
        """
        artifacts = list(artifacts)
        missing = self.missing(artifacts)
        if missing:
            names = ", ".join(a.destination for a in missing)
            raise AcquisitionError(f"not staged (run without --skip-acquire): {names}")
        return {a: self.staged_path(a) for a in artifacts}

    def acquire(self, artifacts: Iterable[Artifact], force: bool = False) -> dict[Artifact, Path]:
        """
        Stage artifacts, fetching only what is missing.

        Args:
            artifacts: Files to stage
            force: Re-fetch even if staged files exist

        Returns:
            Dict mapping each artifact to its staged path

        Raises:
            AcquisitionError: on any fetch, extraction or normalization failure
        """
        artifacts = list(artifacts)
        todo = artifacts if force else self.missing(artifacts)
        staged = {a: self.staged_path(a) for a in artifacts}

        if not todo:
            console.print(f"  [dim][skip] {len(artifacts)} artifacts already staged[/]")
            return staged

        console.print(f"[bold cyan]Acquiring[/] {len(todo)} of {len(artifacts)} artifacts")

        client = self._client or httpx.Client(timeout=300.0, follow_redirects=True)
        try:
            with tempfile.TemporaryDirectory(prefix="nwlab-") as workdir:
                downloads: dict[str, Path] = {}
                for artifact in todo:
                    source_path = downloads.get(artifact.source.key)
                    if source_path is None:
                        source_path = self._download(client, artifact.source, Path(workdir))
                        downloads[artifact.source.key] = source_path
                    self._stage(artifact, source_path)
        finally:
            if self._client is None:
                client.close()

        table = Table(title="Staged Artifacts", show_header=True)
        table.add_column("File", style="cyan")
        table.add_column("Bytes", justify="right")
        for artifact in todo:
            table.add_row(artifact.destination, f"{staged[artifact].stat().st_size:,}")
        console.print(table)

        return staged

    def _download(self, client: httpx.Client, source: Source, workdir: Path) -> Path:
        dest = workdir / source.key
        console.print(f"  [yellow]Downloading[/] {source.url}")
        try:
            self._fetch_url(client, source.url, dest)
        except (httpx.HTTPError, OSError) as exc:
            raise AcquisitionError(f"download of {source.url} failed: {exc}") from exc
        logger.debug("fetched %s (%d bytes)", source.url, dest.stat().st_size)
        return dest

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        reraise=True,
    )
    def _fetch_url(self, client: httpx.Client, url: str, dest: Path) -> None:
        """Stream a URL to a local file with retries."""
        with client.stream("GET", url) as response:
            response.raise_for_status()
            with open(dest, "wb") as f:
                for chunk in response.iter_bytes(chunk_size=8192):
                    f.write(chunk)

    def _read(self, artifact: Artifact, source_path: Path) -> bytes:
        if not artifact.source.archive:
            return source_path.read_bytes()
        try:
            with zipfile.ZipFile(source_path) as archive:
                return archive.read(artifact.member)
        except (zipfile.BadZipFile, KeyError) as exc:
            raise AcquisitionError(
                f"cannot extract {artifact.member} from {artifact.source.url}: {exc}"
            ) from exc

    def _stage(self, artifact: Artifact, source_path: Path) -> Path:
        raw = self._read(artifact, source_path)
        try:
            data = artifact.normalization.apply(raw)
        except UnicodeDecodeError as exc:
            raise AcquisitionError(f"cannot decode {artifact.destination}: {exc}") from exc

        dest = self.staged_path(artifact)
        try:
            self._publish(dest, data)
        except OSError as exc:
            raise AcquisitionError(f"cannot publish {artifact.destination}: {exc}") from exc
        console.print(f"    [green]✓[/] {artifact.destination}")
        return dest

    def _publish(self, dest: Path, data: bytes) -> None:
        """Write ``data`` next to ``dest`` and atomically move it into place."""
        dest.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.name}.", suffix=".part", dir=dest.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, dest)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
