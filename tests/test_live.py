"""
End-to-end tests against live backends.

Requires the docker-compose services to be up and the network to be
reachable for the first acquisition. Run with: pytest --run-db
"""

import pytest

from nwlab.config import Settings
from nwlab.datasets.base import BackendKind
from nwlab.etl.outcome import JobStatus
from nwlab.etl.runner import ProvisionRunner

pytestmark = pytest.mark.db


@pytest.fixture(scope="module")
def live_settings(tmp_path_factory):
    return Settings(data_dir=tmp_path_factory.mktemp("data"), compose_enabled=False)


def test_full_run_twice(live_settings, quiet_console):
    """Test that a cold run and a warm re-run both verify cleanly."""
    first = ProvisionRunner(live_settings, console=quiet_console).run(live=False)
    assert first.exit_code == 0, [(j.backend.value, j.entity, j.reason) for j in first if j.reason]

    second = ProvisionRunner(live_settings, console=quiet_console).run(skip_acquire=True, live=False)
    assert second.exit_code == 0
    for job in second:
        assert job.observed == first.job(job.backend, job.entity).observed


def test_northwind_customer_count(live_settings, quiet_console):
    outcome = ProvisionRunner(live_settings, console=quiet_console).run(skip_acquire=True, live=False)
    for kind in BackendKind:
        job = outcome.job(kind, "customers")
        assert job.status is JobStatus.SUCCEEDED
        assert job.observed == 91
