"""
Container bring-up through ``docker compose``.

The images and service definitions live in docker-compose.yml; this module
only asks the runtime to start a service and reports failures.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from nwlab.errors import BringUpError

logger = logging.getLogger(__name__)


def compose_up(services: list[str], compose_file: Path, timeout: float = 600.0) -> None:
    """
    Start ``services`` in detached mode.

    Raises:
        BringUpError: if docker is missing or the command fails
    """
    cmd = ["docker", "compose", "-f", str(compose_file), "up", "-d", *services]
    logger.debug("running %s", " ".join(cmd))
    try:
        subprocess.run(cmd, check=True, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError as exc:
        raise BringUpError("docker executable not found") from exc
    except subprocess.TimeoutExpired as exc:
        raise BringUpError(f"`{' '.join(cmd)}` timed out after {timeout:.0f}s") from exc
    except subprocess.CalledProcessError as exc:
        detail = (exc.stderr or exc.stdout or "").strip().splitlines()
        tail = detail[-1] if detail else f"exit status {exc.returncode}"
        raise BringUpError(f"`docker compose up` failed: {tail}") from exc
