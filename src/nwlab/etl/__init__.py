"""
Provisioning orchestration.

Coordinates the flow, per backend:
1. Acquire staged data (datasets/acquire.py)
2. Bring up the container and wait for application-level readiness
3. Create schema, reset managed entities to empty
4. Bulk load in dependency order, then verify counts

Usage:
    from nwlab.etl.runner import ProvisionRunner
    outcome = ProvisionRunner().run()
"""

from nwlab.etl.outcome import JobStatus, LoadJob, RunOutcome
from nwlab.etl.runner import ProvisionRunner

__all__ = ["JobStatus", "LoadJob", "ProvisionRunner", "RunOutcome"]
