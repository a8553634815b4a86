"""
Provisioning runner.

Drives every other component:

    acquire -> bring-up -> ready -> schema -> reset -> load -> verify

Acquisition runs once for all targeted backends and aborts the run if it
fails. Each backend then runs its own pipeline in a separate thread; within
a pipeline stages are strictly sequential. A failure ends the jobs of that
pipeline (or of one load unit) and never reaches the other pipelines.

Usage:
    from nwlab.etl.runner import ProvisionRunner
    runner = ProvisionRunner()
    outcome = runner.run()                                # every backend
    outcome = runner.run([BackendKind.DOCUMENT], skip_acquire=True)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Mapping, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from pathlib import Path

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from nwlab.backends import Backend, LoadUnit, create_backend, dependency_order
from nwlab.compose import compose_up
from nwlab.config import Settings, settings as default_settings
from nwlab.datasets.acquire import Acquirer
from nwlab.datasets.base import BackendKind, Entity
from nwlab.datasets.catalog import ENTITIES, artifacts_for
from nwlab.errors import Cancelled, ProvisionError, ResetError
from nwlab.etl.outcome import JobStatus, LoadJob, RunOutcome
from nwlab.readiness import await_ready
from nwlab.verify import verify

logger = logging.getLogger(__name__)

ComposeUp = Callable[[list[str], Path], None]

STATUS_LABELS = {
    JobStatus.PENDING: ("[ ]", "dim"),
    JobStatus.ACQUIRING: ("[v]", "cyan"),
    JobStatus.READY_TO_LOAD: ("[.]", "cyan"),
    JobStatus.LOADING: ("[>]", "yellow bold"),
    JobStatus.VERIFYING: ("[?]", "yellow"),
    JobStatus.SUCCEEDED: ("[ok]", "green"),
    JobStatus.FAILED: ("[!]", "red"),
    JobStatus.SKIPPED: ("[-]", "dim"),
}


class ProvisionRunner:
    """Provision and load every targeted backend, with a live status display."""

    def __init__(
        self,
        settings: Settings | None = None,
        backends: Mapping[BackendKind, Backend] | None = None,
        acquirer: Acquirer | None = None,
        compose: ComposeUp = compose_up,
        entities: Sequence[Entity] = ENTITIES,
        console: Console | None = None,
    ):
        self.settings = settings or default_settings
        self.entities = tuple(entities)
        self.acquirer = acquirer or Acquirer(self.settings.data_dir)
        self.compose = compose
        self.console = console or Console()
        self._backends = dict(backends or {})
        self._compose_lock = threading.Lock()
        self.outcome = RunOutcome()

    # Dashboard

    def _status_cell(self, job: LoadJob | None) -> Text:
        if job is None:
            return Text("-", style="dim")
        label, style = STATUS_LABELS[job.status]
        cell = Text(label, style=style)
        if job.observed is not None:
            cell.append(f" {job.observed:,}")
            if job.loaded is not None and job.loaded != job.observed:
                cell.append(f" (loaded {job.loaded:,})", style="red")
        return cell

    def _build_table(self, targets: Sequence[BackendKind]) -> Table:
        table = Table(
            title="Provisioning Status",
            show_header=True,
            header_style="bold cyan",
            expand=True,
        )
        table.add_column("Entity", width=16)
        table.add_column("Parents", style="dim", width=20)
        for kind in targets:
            table.add_column(kind.value.title(), min_width=14, justify="center")

        for entity in self.entities:
            parents = ", ".join(sorted(entity.parents)) or "-"
            cells = [self._status_cell(self.outcome.job(kind, entity.name)) for kind in targets]
            table.add_row(entity.name, parents, *cells)
        return table

    def _build_dashboard(self, targets: Sequence[BackendKind]) -> Panel:
        legend = Text()
        legend.append("Legend: ", style="bold")
        for status in (JobStatus.PENDING, JobStatus.LOADING, JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.SKIPPED):
            label, style = STATUS_LABELS[status]
            legend.append(f"{label} {status.value}  ", style=style)

        content = Group(self._build_table(targets), Text(""), legend)
        return Panel(content, title="[bold blue]Northwind Lab Provisioning[/]", border_style="blue")

    def _build_failures(self) -> Table | None:
        jobs = [j for j in self.outcome if j.status in (JobStatus.FAILED, JobStatus.SKIPPED)]
        if not jobs:
            return None
        table = Table(title="Failed / Skipped Jobs", show_header=True, header_style="bold red")
        table.add_column("Backend", style="cyan")
        table.add_column("Entity")
        table.add_column("Stage", style="yellow")
        table.add_column("Status")
        table.add_column("Reason", overflow="fold")
        for job in jobs:
            table.add_row(job.backend.value, job.entity, job.stage or "-", job.status.value, job.reason or "")
        return table

    def show_summary(self, targets: Sequence[BackendKind]) -> None:
        self.console.print(self._build_table(targets))
        failures = self._build_failures()
        if failures is not None:
            self.console.print(failures)

        totals = self.outcome.counts()
        if self.outcome.succeeded:
            self.console.print(f"[bold green]All {len(self.outcome)} load jobs succeeded[/]")
        else:
            self.console.print(
                f"[bold red]{totals[JobStatus.FAILED]} failed, {totals[JobStatus.SKIPPED]} skipped, "
                f"{totals[JobStatus.SUCCEEDED]} succeeded[/]"
            )

    # Orchestration

    def _backend(self, kind: BackendKind) -> Backend:
        if kind not in self._backends:
            self._backends[kind] = create_backend(kind, self.settings)
        return self._backends[kind]

    def run(
        self,
        targets: Iterable[BackendKind] | None = None,
        skip_acquire: bool = False,
        cancel: threading.Event | None = None,
        live: bool = True,
    ) -> RunOutcome:
        """
        Run one orchestration pass.

        Args:
            targets: Backends to provision (None: all; an empty list provisions nothing)
            skip_acquire: Reuse staged data, never touch the network
            cancel: Event that stops new stages from starting
            live: Show the live dashboard while running

        Returns:
            The finalized run outcome
        """
        targets = list(BackendKind) if targets is None else list(dict.fromkeys(targets))
        cancel = cancel or threading.Event()
        self.outcome = RunOutcome()
        owned = [k for k in targets if k not in self._backends]
        backends = {kind: self._backend(kind) for kind in targets}

        for kind, backend in backends.items():
            for entity in backend.entities(self.entities):
                self.outcome.add(kind, entity.name)

        live_display = Live(
            self._build_dashboard(targets),
            console=self.console,
            refresh_per_second=4,
            transient=True,
        ) if live else None

        try:
            if live_display:
                live_display.start()
            if targets and self._acquire(targets, skip_acquire, cancel):
                self._run_pipelines(backends, cancel, live_display, targets)
        finally:
            if live_display:
                live_display.stop()
            for kind in owned:
                self._backends.pop(kind).close()

        self.outcome.finalize()
        self.show_summary(targets)
        return self.outcome

    def _acquire(self, targets: Sequence[BackendKind], skip_acquire: bool, cancel: threading.Event) -> bool:
        for job in self.outcome:
            self.outcome.advance(job.backend, job.entity, JobStatus.ACQUIRING)

        artifacts = artifacts_for(set(targets))
        try:
            if cancel.is_set():
                raise Cancelled("cancelled before acquisition", stage="acquire")
            if skip_acquire:
                self.acquirer.require_staged(artifacts)
            else:
                self.acquirer.acquire(artifacts)
        except Cancelled as exc:
            self.outcome.end_open(None, JobStatus.SKIPPED, "acquire", exc.message)
            return False
        except KeyboardInterrupt:
            cancel.set()
            self.outcome.end_open(None, JobStatus.SKIPPED, "acquire", "cancelled during acquisition")
            return False
        except ProvisionError as exc:
            logger.error("acquisition failed, aborting run: %s", exc)
            self.outcome.aborted = exc
            self.outcome.end_open(None, JobStatus.FAILED, "acquire", exc.message)
            return False

        for job in self.outcome:
            self.outcome.advance(job.backend, job.entity, JobStatus.READY_TO_LOAD)
        return True

    def _run_pipelines(
        self,
        backends: Mapping[BackendKind, Backend],
        cancel: threading.Event,
        live_display: Live | None,
        targets: Sequence[BackendKind],
    ) -> None:
        with ThreadPoolExecutor(max_workers=len(backends), thread_name_prefix="pipeline") as pool:
            futures: dict[Future, BackendKind] = {
                pool.submit(self._pipeline, backend, cancel): kind for kind, backend in backends.items()
            }
            pending = set(futures)
            while pending:
                try:
                    _, pending = wait(pending, timeout=0.25, return_when=FIRST_COMPLETED)
                    if live_display:
                        live_display.update(self._build_dashboard(targets))
                except KeyboardInterrupt:
                    if not cancel.is_set():
                        self.console.print("[yellow]Interrupted: finishing in-flight loads...[/]")
                        cancel.set()

        for future, kind in futures.items():
            exc = future.exception()
            if exc is not None:
                logger.exception("%s pipeline crashed", kind.value, exc_info=exc)
                self.outcome.end_open(kind, JobStatus.FAILED, "internal", f"{type(exc).__name__}: {exc}")

    def _checkpoint(self, cancel: threading.Event, stage: str) -> None:
        if cancel.is_set():
            raise Cancelled(f"cancelled before {stage}", stage=stage)

    def _await(self, probe: Callable[[], object], name: str, cancel: threading.Event) -> None:
        await_ready(
            probe,
            name=name,
            max_attempts=self.settings.ready_max_attempts,
            interval=self.settings.ready_interval,
            cancel=cancel,
        )

    def _pipeline(self, backend: Backend, cancel: threading.Event) -> None:
        """Run every stage for one backend; record failures instead of raising."""
        kind = backend.kind
        stage = "bring-up"
        try:
            entities = dependency_order(backend.entities(self.entities))
            self._checkpoint(cancel, stage)
            if self.settings.compose_enabled:
                with self._compose_lock:
                    self.compose([backend.service], self.settings.compose_file)

            stage = "ready"
            self._checkpoint(cancel, stage)
            self._await(backend.ping, kind.value, cancel)

            stage = "schema"
            self._checkpoint(cancel, stage)
            backend.ensure_namespace()
            self._await(backend.ping_namespace, f"{kind.value} namespace", cancel)
            backend.ensure_schema(entities)

            stage = "reset"
            self._checkpoint(cancel, stage)
            backend.reset(entities)
            self._check_empty(backend, entities)

            stage = "load"
            self._checkpoint(cancel, stage)
            expected = {e.name: backend.expected_count(e) for e in entities}
            for name, count in expected.items():
                self.outcome.record(kind, name, expected=count)
            self._run_units(backend, backend.plan_loads(entities), expected, cancel)

        except Cancelled as exc:
            self.outcome.end_open(kind, JobStatus.SKIPPED, exc.stage or stage, exc.message)
        except ProvisionError as exc:
            logger.error("%s pipeline failed: %s", kind.value, exc)
            self.outcome.end_open(kind, JobStatus.FAILED, exc.stage or stage, exc.message)
        except Exception as exc:
            logger.error("%s pipeline failed at %s: %s", kind.value, stage, exc)
            self.outcome.end_open(kind, JobStatus.FAILED, stage, f"{type(exc).__name__}: {exc}")

    def _check_empty(self, backend: Backend, entities: Sequence[Entity]) -> None:
        leftovers = {e.name: n for e in entities if (n := backend.count(e))}
        if leftovers:
            detail = ", ".join(f"{name}={n:,}" for name, n in leftovers.items())
            raise ResetError(f"records left after reset: {detail}", backend=backend.name)

    def _run_units(
        self,
        backend: Backend,
        units: Sequence[LoadUnit],
        expected: Mapping[str, int | None],
        cancel: threading.Event,
    ) -> None:
        kind = backend.kind

        if backend.concurrent_loads:
            runnable = []
            for unit in units:
                if cancel.is_set():
                    for name in unit.names:
                        self.outcome.skip(kind, name, "load", "cancelled before load")
                else:
                    runnable.append(unit)
            if runnable:
                with ThreadPoolExecutor(max_workers=len(runnable), thread_name_prefix=kind.value) as pool:
                    list(pool.map(lambda u: self._run_unit(backend, u, expected), runnable))
            return

        failed: set[str] = set()
        for unit in units:
            if cancel.is_set():
                for name in unit.names:
                    self.outcome.skip(kind, name, "load", "cancelled before load")
                continue
            blocked = sorted({p for e in unit.entities for p in e.parents} & failed)
            if blocked:
                for name in unit.names:
                    self.outcome.skip(kind, name, "load", f"parent {', '.join(blocked)} not loaded")
                failed.update(unit.names)
                continue
            if not self._run_unit(backend, unit, expected):
                failed.update(unit.names)

    def _run_unit(self, backend: Backend, unit: LoadUnit, expected: Mapping[str, int | None]) -> bool:
        """Load and verify one unit. Returns True if every entity in it succeeded."""
        kind = backend.kind
        for name in unit.names:
            self.outcome.advance(kind, name, JobStatus.LOADING)

        try:
            loaded = unit.run()
        except Exception as exc:
            if isinstance(exc, ProvisionError):
                stage, reason = exc.stage or "load", exc.message
            else:
                stage, reason = "load", f"{type(exc).__name__}: {exc}"
            logger.error("%s load of %s failed: %s", kind.value, ", ".join(unit.names), reason)
            for name in unit.names:
                self.outcome.fail(kind, name, stage, reason)
            return False

        # a loader reports a record count only for single-entity units
        if len(unit.names) == 1 and isinstance(loaded, int):
            self.outcome.record(kind, unit.names[0], loaded=loaded)
        else:
            loaded = None

        for name in unit.names:
            self.outcome.advance(kind, name, JobStatus.VERIFYING)

        result = verify(backend, unit.entities, expected)
        ok = True
        for name in unit.names:
            if name in result.observed:
                self.outcome.record(kind, name, observed=result.observed[name])
                if loaded is not None and loaded != result.observed[name]:
                    logger.warning(
                        "%s/%s: loader reported %d records, counted %d",
                        kind.value, name, loaded, result.observed[name],
                    )
            failure = result.failure(name)
            if failure is not None:
                self.outcome.fail(kind, name, "verify", failure.message)
                ok = False
            else:
                self.outcome.advance(kind, name, JobStatus.SUCCEEDED)
        return ok
