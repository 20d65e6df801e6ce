from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from .errors import CommandError
from .lib.mutator import EJECT, MOUNT, UNMOUNT
from .models import ScanResult

logger = logging.getLogger(__name__)

Expectation = Callable[[ScanResult], bool]


@dataclass(frozen=True)
class VerifyPolicy:
    initial_delay_s: float = 0.5
    attempts: int = 5
    backoff: float = 2.0
    max_delay_s: float = 4.0
    deadline_s: float = 15.0


def expected_state(action: str, device_id: str) -> Expectation:
    """What a successful ``action`` on ``device_id`` should look like in the next snapshot."""

    def mounted(s: ScanResult) -> bool:
        r = s.find(device_id)
        return r is not None and r.is_mounted

    def unmounted(s: ScanResult) -> bool:
        r = s.find(device_id)
        return r is not None and not r.is_mounted

    def gone(s: ScanResult) -> bool:
        return s.find(device_id) is None

    table = {MOUNT: mounted, UNMOUNT: unmounted, EJECT: gone}
    if action not in table:
        raise ValueError(f"No expected state for action {action!r}")
    return table[action]


def wait_for_state(
    expected: Expectation,
    *,
    scan: Callable[[], ScanResult],
    policy: VerifyPolicy = VerifyPolicy(),
    on_snapshot: Optional[Callable[[ScanResult], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> Tuple[bool, Optional[ScanResult]]:
    """Re-enumerate with backoff until ``expected`` holds or attempts/deadline run out.

    Returns (converged, last snapshot seen). Every snapshot is handed to
    ``on_snapshot`` whether or not it matches.
    """

    start = clock()
    delay = policy.initial_delay_s
    last: Optional[ScanResult] = None

    for attempt in range(1, policy.attempts + 1):
        remaining = policy.deadline_s - (clock() - start)
        if remaining <= 0:
            logger.info("Verification deadline reached after %d attempt(s)", attempt - 1)
            break
        if delay > 0:
            sleep(min(delay, remaining))

        try:
            last = scan()
        except CommandError as e:
            logger.warning("Verification scan %d failed: %s", attempt, e)
        else:
            if on_snapshot is not None:
                on_snapshot(last)
            if expected(last):
                logger.debug("Converged on attempt %d", attempt)
                return True, last

        delay = min(delay * policy.backoff, policy.max_delay_s)

    return False, last
