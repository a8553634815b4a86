"""
Readiness polling.

A backend is ready when it executes an application-level command, which
can lag well behind the container accepting TCP connections. One poller
serves all backends; only the probe differs.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from tenacity import (
    RetryError,
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from nwlab.errors import Cancelled, ReadinessTimeout

logger = logging.getLogger(__name__)

Probe = Callable[[], object]


def _interruptible_sleep(cancel: threading.Event | None, name: str) -> Callable[[float], None]:
    def sleep(seconds: float) -> None:
        if cancel is None:
            time.sleep(seconds)
        elif cancel.wait(seconds):
            raise Cancelled(f"cancelled while waiting for {name}", stage="ready")

    return sleep


def await_ready(
    probe: Probe,
    *,
    name: str,
    max_attempts: int,
    interval: float,
    cancel: threading.Event | None = None,
) -> int:
    """
    Block until ``probe`` succeeds.

    The probe is called with no arguments; a falsy return value or any
    exception counts as "not ready yet".

    Args:
        probe: Readiness predicate
        name: Label used in logs and errors
        max_attempts: Attempts before giving up
        interval: Seconds between attempts
        cancel: Optional event that interrupts the wait

    Returns:
        The attempt number that succeeded (1-based)

    Raises:
        ReadinessTimeout: if every attempt failed
        Cancelled: if ``cancel`` was set while waiting
    """
    if cancel is not None and cancel.is_set():
        raise Cancelled(f"cancelled before waiting for {name}", stage="ready")

    retrying = Retrying(
        retry=retry_if_exception_type(Exception) | retry_if_result(lambda ok: not ok),
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(interval),
        sleep=_interruptible_sleep(cancel, name),
        before_sleep=before_sleep_log(logger, logging.DEBUG),
    )
    attempts = 0
    try:
        for attempt in retrying:
            attempts += 1
            with attempt:
                ok = probe()
            if not attempt.retry_state.outcome.failed:
                attempt.retry_state.set_result(ok)
    except RetryError as exc:
        last = exc.last_attempt
        error = last.exception() if last.failed else None
        detail = f": {error}" if error else ""
        raise ReadinessTimeout(
            f"{name} not ready after {last.attempt_number} attempts{detail}",
            attempts=last.attempt_number,
            last_error=error,
        ) from error

    logger.debug("%s ready after %d attempt(s)", name, attempts)
    return attempts
