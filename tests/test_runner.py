"""Tests for the provisioning runner using in-memory backends."""

import io
import threading

import pytest
from rich.console import Console

from nwlab.datasets.base import BackendKind
from nwlab.errors import AcquisitionError, BringUpError
from nwlab.etl.outcome import JobStatus
from nwlab.etl.runner import ProvisionRunner

from fakes import NORTHWIND_COUNTS, StubAcquirer, fake_backends


def _runner(settings, console, backends, acquirer=None, compose=None):
    return ProvisionRunner(
        settings,
        backends=backends,
        acquirer=acquirer or StubAcquirer(),
        compose=compose or (lambda services, compose_file: None),
        console=console,
    )


def _statuses(outcome, kind):
    return {job.entity: job.status for job in outcome.jobs(kind)}


def test_full_run_succeeds(settings, quiet_console):
    """Test that a clean run loads and verifies every job on every backend."""
    backends = fake_backends(settings)

    outcome = _runner(settings, quiet_console, backends).run(live=False)

    assert outcome.exit_code == 0
    assert len(outcome) == 11  # 4 tabular, 3 document, 4 graph
    for kind in BackendKind:
        job = outcome.job(kind, "customers")
        assert job.status is JobStatus.SUCCEEDED
        assert job.expected == job.observed == 91
    assert "All 11 load jobs succeeded" in quiet_console.file.getvalue()


def test_tabular_loads_in_dependency_order(settings, quiet_console):
    backends = fake_backends(settings)

    _runner(settings, quiet_console, backends).run(live=False)

    order = backends[BackendKind.TABULAR].load_order
    assert order.index("customers") < order.index("orders") < order.index("order_details")
    assert order.index("products") < order.index("order_details")


def test_rerun_is_idempotent(settings, quiet_console):
    """Test that a second run replaces rather than appends."""
    backends = fake_backends(settings)
    runner = _runner(settings, quiet_console, backends)

    first = runner.run(live=False)
    second = runner.run(live=False)

    assert first.exit_code == second.exit_code == 0
    for kind, backend in backends.items():
        # every load started from an empty store
        assert set(backend.counts_at_load.values()) == {0}
        for job in second.jobs(kind):
            assert job.observed == NORTHWIND_COUNTS[job.entity]
            assert job.observed == first.job(kind, job.entity).observed


def test_graph_failure_is_isolated(settings, quiet_console):
    """Test that one backend failing leaves the others untouched."""
    backends = fake_backends(settings, graph={"fail_load": {"customers"}})

    outcome = _runner(settings, quiet_console, backends).run(live=False)

    assert outcome.exit_code == 1
    assert set(_statuses(outcome, BackendKind.GRAPH).values()) == {JobStatus.FAILED}
    assert all(job.stage == "load" for job in outcome.jobs(BackendKind.GRAPH))
    for kind in (BackendKind.TABULAR, BackendKind.DOCUMENT):
        assert set(_statuses(outcome, kind).values()) == {JobStatus.SUCCEEDED}


def test_count_mismatch_fails_only_that_job(settings, quiet_console):
    backends = fake_backends(settings, document={"drop": {"orders": 1}})

    outcome = _runner(settings, quiet_console, backends).run(live=False)

    job = outcome.job(BackendKind.DOCUMENT, "orders")
    assert job.status is JobStatus.FAILED
    assert job.stage == "verify"
    assert job.reason == "expected 830 records, found 829 (-1)"
    assert (job.expected, job.observed) == (830, 829)
    assert outcome.job(BackendKind.DOCUMENT, "customers").status is JobStatus.SUCCEEDED
    assert outcome.job(BackendKind.TABULAR, "orders").status is JobStatus.SUCCEEDED
    assert outcome.exit_code == 1


def test_leaky_reset_fails_backend(settings, quiet_console):
    """Test that records surviving reset stop the backend before loading."""
    backends = fake_backends(settings, tabular={"leaky_reset": True})
    backends[BackendKind.TABULAR].store.update(NORTHWIND_COUNTS)

    outcome = _runner(settings, quiet_console, backends).run(live=False)

    jobs = outcome.jobs(BackendKind.TABULAR)
    assert {j.status for j in jobs} == {JobStatus.FAILED}
    assert {j.stage for j in jobs} == {"reset"}
    assert "records left after reset" in jobs[0].reason
    assert backends[BackendKind.TABULAR].load_order == []


def test_parent_failure_skips_children(settings, quiet_console):
    backends = fake_backends(settings, tabular={"fail_load": {"customers"}})

    outcome = _runner(settings, quiet_console, backends).run(live=False)

    statuses = _statuses(outcome, BackendKind.TABULAR)
    assert statuses == {
        "customers": JobStatus.FAILED,
        "products": JobStatus.SUCCEEDED,
        "orders": JobStatus.SKIPPED,
        "order_details": JobStatus.SKIPPED,
    }
    assert outcome.job(BackendKind.TABULAR, "orders").reason == "parent customers not loaded"
    assert "orders" not in backends[BackendKind.TABULAR].load_order


def test_readiness_timeout(settings, quiet_console):
    backends = fake_backends(settings, graph={"ready_after": 100})

    outcome = _runner(settings, quiet_console, backends).run(live=False)

    jobs = outcome.jobs(BackendKind.GRAPH)
    assert {j.status for j in jobs} == {JobStatus.FAILED}
    assert {j.stage for j in jobs} == {"ready"}
    assert "not ready after 3 attempts" in jobs[0].reason
    assert backends[BackendKind.GRAPH].pings == settings.ready_max_attempts
    assert set(_statuses(outcome, BackendKind.TABULAR).values()) == {JobStatus.SUCCEEDED}


def test_slow_backend_becomes_ready(settings, quiet_console):
    backends = fake_backends(settings, document={"ready_after": 3})
    outcome = _runner(settings, quiet_console, backends).run(live=False)
    assert outcome.exit_code == 0


def test_schema_failure(settings, quiet_console):
    backends = fake_backends(settings, document={"fail_schema": True})

    outcome = _runner(settings, quiet_console, backends).run(live=False)

    assert {j.stage for j in outcome.jobs(BackendKind.DOCUMENT)} == {"schema"}
    assert "reset" not in backends[BackendKind.DOCUMENT].calls


def test_acquisition_failure_aborts_run(settings, quiet_console):
    """Test that no backend is touched when staging fails."""
    backends = fake_backends(settings)
    acquirer = StubAcquirer(AcquisitionError("download failed: 503"))

    outcome = _runner(settings, quiet_console, backends, acquirer).run(live=False)

    assert outcome.aborted is not None
    assert {j.status for j in outcome} == {JobStatus.FAILED}
    assert {j.stage for j in outcome} == {"acquire"}
    assert all(b.pings == 0 for b in backends.values())
    assert outcome.exit_code == 1


def test_skip_acquire_uses_staged_data(settings, quiet_console):
    acquirer = StubAcquirer()

    _runner(settings, quiet_console, fake_backends(settings), acquirer).run(skip_acquire=True, live=False)

    assert [call[0] for call in acquirer.calls] == ["require_staged"]


def test_target_scoping(settings, quiet_console):
    backends = fake_backends(settings)
    acquirer = StubAcquirer()

    outcome = _runner(settings, quiet_console, backends, acquirer).run(
        [BackendKind.DOCUMENT], live=False
    )

    assert {j.backend for j in outcome} == {BackendKind.DOCUMENT}
    assert outcome.exit_code == 0
    assert backends[BackendKind.TABULAR].pings == 0
    assert backends[BackendKind.GRAPH].pings == 0
    # customers, products and orders JSON only
    assert acquirer.calls == [("acquire", 3)]


def test_cancel_before_start(settings, quiet_console):
    cancel = threading.Event()
    cancel.set()
    backends = fake_backends(settings)

    outcome = _runner(settings, quiet_console, backends).run(cancel=cancel, live=False)

    assert {j.status for j in outcome} == {JobStatus.SKIPPED}
    assert all(b.pings == 0 for b in backends.values())


def test_cancel_mid_run(settings, quiet_console):
    """Test that the in-flight load finishes and nothing new starts."""
    cancel = threading.Event()

    def interrupt(backend, entity):
        if entity.name == "customers":
            cancel.set()

    backends = fake_backends(settings, tabular={"on_load": interrupt})

    outcome = _runner(settings, quiet_console, backends).run(cancel=cancel, live=False)

    tabular = _statuses(outcome, BackendKind.TABULAR)
    assert tabular["customers"] is JobStatus.SUCCEEDED
    assert {tabular[n] for n in ("products", "orders", "order_details")} == {JobStatus.SKIPPED}
    assert backends[BackendKind.TABULAR].load_order == ["customers"]
    for job in outcome:
        assert job.status in (JobStatus.SUCCEEDED, JobStatus.SKIPPED)
    assert outcome.exit_code == 1


def test_unexpected_error_fails_job(settings, quiet_console):
    def boom(backend, entity):
        raise RuntimeError("boom")

    backends = fake_backends(settings, document={"on_load": boom})

    outcome = _runner(settings, quiet_console, backends).run(live=False)

    job = outcome.job(BackendKind.DOCUMENT, "products")
    assert (job.status, job.stage, job.reason) == (JobStatus.FAILED, "load", "RuntimeError: boom")


def test_compose_called_per_backend(settings, quiet_console):
    cfg = settings.model_copy(update={"compose_enabled": True})
    started = []

    def compose(services, compose_file):
        started.extend(services)

    outcome = _runner(cfg, quiet_console, fake_backends(cfg), compose=compose).run(live=False)

    assert outcome.exit_code == 0
    assert sorted(started) == ["mongo", "neo4j", "postgres"]


def test_bring_up_failure(settings, quiet_console):
    cfg = settings.model_copy(update={"compose_enabled": True})

    def compose(services, compose_file):
        if services == ["neo4j"]:
            raise BringUpError("`docker compose up` failed: no such image")

    outcome = _runner(cfg, quiet_console, fake_backends(cfg), compose=compose).run(live=False)

    jobs = outcome.jobs(BackendKind.GRAPH)
    assert {j.stage for j in jobs} == {"bring-up"}
    assert {j.status for j in jobs} == {JobStatus.FAILED}
    assert set(_statuses(outcome, BackendKind.DOCUMENT).values()) == {JobStatus.SUCCEEDED}


def test_outcome_is_finalized(settings, quiet_console):
    outcome = _runner(settings, quiet_console, fake_backends(settings)).run(live=False)
    assert outcome.finalized


@pytest.mark.parametrize("targets", [[BackendKind.GRAPH, BackendKind.GRAPH], [BackendKind.GRAPH]])
def test_duplicate_targets(settings, quiet_console, targets):
    outcome = _runner(settings, quiet_console, fake_backends(settings)).run(targets, live=False)
    assert len(outcome) == 4


def test_failure_summary_printed(settings, quiet_console):
    backends = fake_backends(settings, graph={"ready_after": 100})

    _runner(settings, quiet_console, backends).run(live=False)

    output = quiet_console.file.getvalue()
    assert "Failed / Skipped Jobs" in output
    assert "4 failed, 0 skipped, 7 succeeded" in output


def test_keyboard_interrupt_cancels_remaining_loads(settings, quiet_console, monkeypatch):
    """Test that Ctrl-C lets the in-flight load finish and skips the rest."""
    from nwlab.etl import runner as runner_module

    cancel = threading.Event()
    loading = threading.Event()
    interrupted = []

    def hold_customers(backend, entity):
        if entity.name == "customers":
            loading.set()
            assert cancel.wait(5)

    real_wait = runner_module.wait

    def interrupting_wait(fs, **kwargs):
        if loading.is_set() and not interrupted:
            interrupted.append(True)
            raise KeyboardInterrupt
        return real_wait(fs, **kwargs)

    monkeypatch.setattr(runner_module, "wait", interrupting_wait)
    backends = fake_backends(settings, tabular={"on_load": hold_customers})

    outcome = _runner(settings, quiet_console, backends).run(cancel=cancel, live=False)

    assert interrupted and cancel.is_set()
    tabular = {job.entity: job for job in outcome.jobs(BackendKind.TABULAR)}
    assert tabular["customers"].status is JobStatus.SUCCEEDED
    for name in ("products", "orders", "order_details"):
        assert (tabular[name].status, tabular[name].stage) == (JobStatus.SKIPPED, "load")
        assert tabular[name].reason == "cancelled before load"
    for job in outcome:
        assert job.status in (JobStatus.SUCCEEDED, JobStatus.SKIPPED)
    assert "Interrupted" in quiet_console.file.getvalue()
    assert outcome.exit_code == 1


def test_live_dashboard(settings):
    console = Console(file=io.StringIO(), force_terminal=True, width=160)

    outcome = _runner(settings, console, fake_backends(settings)).run(live=True)

    assert outcome.exit_code == 0
    output = console.file.getvalue()
    assert "Northwind Lab Provisioning" in output
    assert "All 11 load jobs succeeded" in output


def test_empty_target_list_provisions_nothing(settings, quiet_console):
    backends = fake_backends(settings)
    acquirer = StubAcquirer()

    outcome = _runner(settings, quiet_console, backends, acquirer).run([], live=False)

    assert len(outcome) == 0
    assert acquirer.calls == []
    assert all(b.pings == 0 for b in backends.values())


def test_loader_count_recorded(settings, quiet_console):
    """Test that the loader's own count is kept next to the verified count."""
    backends = fake_backends(settings, tabular={"misreport": {"orders": 5}})

    outcome = _runner(settings, quiet_console, backends).run(live=False)

    orders = outcome.job(BackendKind.TABULAR, "orders")
    assert (orders.loaded, orders.observed) == (835, 830)
    assert outcome.job(BackendKind.TABULAR, "customers").loaded == 91
    # the graph script loads every entity in one unit and reports no count
    assert all(job.loaded is None for job in outcome.jobs(BackendKind.GRAPH))
    assert "(loaded 835)" in quiet_console.file.getvalue()
