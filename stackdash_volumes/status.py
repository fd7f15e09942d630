"""
Volume state reads and polling.

StatusProbe turns one GET /volumes/{id} into a VolumeState, or None when the
read could not be completed. ConvergenceWaiter polls the probe on a fixed
interval until a predicate holds or the wall-clock budget runs out.
"""

import logging
import math
import time
from typing import Callable

from .errors import APIError, NotFoundError
from .models import ATTACH_STATUS_ATTACHED, STATUS_AVAILABLE, VolumeState

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2


def is_detached(state: VolumeState | None) -> bool:
    """Detach confirmation: available, not flagged attached, no attachment records."""
    return (
        state is not None
        and state.exists
        and state.status == STATUS_AVAILABLE
        and state.attach_status != ATTACH_STATUS_ATTACHED
        and not state.attachments
    )


def is_gone(state: VolumeState | None) -> bool:
    return state is not None and not state.exists


class StatusProbe:
    """Reads the current state of a volume. Never raises for remote failures."""

    def __init__(self, api):
        self.api = api

    def check_status(self, volume_id: str, timeout: float | None = None) -> VolumeState | None:
        """
        Read the latest state of a volume.

        Args:
            volume_id: Volume to read
            timeout: Upper bound for this read, in seconds (client default if None)

        Returns:
            VolumeState on success, VolumeState.missing() on 404,
            None if the read itself failed
        """
        if not volume_id:
            raise ValueError("volume_id must not be empty")

        try:
            data = self.api.get_volume(volume_id, timeout=timeout)
        except NotFoundError:
            logger.debug(f"Volume {volume_id} not found")
            return VolumeState.missing(volume_id)
        except APIError as e:
            logger.warning(f"Could not read volume {volume_id}: {e}")
            return None

        try:
            return VolumeState.from_api(data)
        except (KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Could not decode volume {volume_id}: {e!r}")
            return None


class ConvergenceWaiter:
    """Polls a StatusProbe until a condition holds or a time budget is spent."""

    def __init__(self, probe: StatusProbe, interval: float = DEFAULT_POLL_INTERVAL):
        self.probe = probe
        self.interval = interval

    def wait_until(
        self,
        volume_id: str,
        predicate: Callable[[VolumeState], bool],
        max_wait_seconds: float,
        interval: float | None = None,
    ) -> bool:
        """
        Poll until predicate(state) is true.

        Unreadable states count as "not yet". The loop is bounded both by a
        monotonic deadline and by a read count, so it never overruns the
        budget by more than one interval.

        Args:
            volume_id: Volume to poll
            predicate: Condition on a VolumeState
            max_wait_seconds: Wall-clock budget
            interval: Override for the poll interval

        Returns:
            True if the condition was observed, False on timeout
        """
        interval = self.interval if interval is None else interval
        max_reads = math.ceil(max_wait_seconds / interval) + 1 if interval > 0 else 1
        deadline = time.monotonic() + max_wait_seconds

        for attempt in range(1, max_reads + 1):
            # A read may run past the deadline by at most one interval
            read_timeout = max(deadline - time.monotonic(), 0) + interval
            state = self.probe.check_status(volume_id, timeout=read_timeout)
            if state is not None and predicate(state):
                logger.debug(f"Volume {volume_id} converged after {attempt} read(s)")
                return True

            remaining = deadline - time.monotonic()
            if remaining <= 0 or attempt == max_reads:
                break
            time.sleep(min(interval, remaining))

        logger.info(f"Volume {volume_id} did not converge within {max_wait_seconds}s")
        return False
