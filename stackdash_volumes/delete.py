"""
Guarded volume deletion.

Deletion is only requested against a volume that a fresh read shows has no
attachments. Dependent snapshots are reported to the caller, who owns the
decision. After the request, the volume is polled until a 404 is seen; if the
poll budget runs out first the outcome is ASSUMED, not CONFIRMED, because the
platform accepted the request but the client never saw it complete.
"""

import logging
import time
from typing import Callable

from .errors import APIError, NotFoundError, VolumeInUseError, VolumeStateUnknownError
from .models import ERROR_STATUSES, DeleteOutcome, DeleteResult, Snapshot
from .status import StatusProbe

logger = logging.getLogger(__name__)

DELETE_POLL_INTERVAL = 1
DELETE_MAX_POLLS = 30

SnapshotConfirmation = Callable[[list[Snapshot]], bool]


class DeleteOrchestrator:
    """Validates preconditions, issues the delete and waits for the 404."""

    def __init__(
        self,
        api,
        probe: StatusProbe,
        poll_interval: float = DELETE_POLL_INTERVAL,
        max_polls: int = DELETE_MAX_POLLS,
    ):
        self.api = api
        self.probe = probe
        self.poll_interval = poll_interval
        self.max_polls = int(max_polls)

    def safe_delete(
        self,
        volume_id: str,
        label: str | None = None,
        confirm_snapshots: SnapshotConfirmation | None = None,
    ) -> DeleteResult:
        """
        Delete a detached volume.

        Args:
            volume_id: Volume to delete
            label: Human-readable name used in log messages and errors
            confirm_snapshots: Called with the dependent snapshots when there
                are any; returning False cancels the delete

        Returns:
            DeleteResult; truthy for CONFIRMED and ASSUMED outcomes

        Raises:
            VolumeStateUnknownError: If the volume cannot be read
            VolumeInUseError: If the volume has attachments
        """
        name = f"'{label}' ({volume_id})" if label else volume_id

        state = self.probe.check_status(volume_id)
        if state is None:
            raise VolumeStateUnknownError(volume_id, label)

        if not state.exists:
            logger.info(f"Volume {name} is already gone")
            return DeleteResult(volume_id, DeleteOutcome.CONFIRMED)

        if state.attachments:
            logger.warning(
                f"Refusing to delete volume {name}: "
                f"{len(state.attachments)} attachment(s) present (status {state.status})"
            )
            raise VolumeInUseError(volume_id, state.attachments, label)

        snapshots = self.find_snapshots(volume_id)
        if snapshots:
            logger.info(f"Volume {name} has {len(snapshots)} dependent snapshot(s)")
            if confirm_snapshots is not None and not confirm_snapshots(snapshots):
                logger.info(f"Deletion of volume {name} declined by caller")
                return DeleteResult(volume_id, DeleteOutcome.DECLINED, snapshots, state.status)

        try:
            self.api.delete_volume(volume_id)
        except NotFoundError:
            logger.info(f"Volume {name} disappeared before the delete request")
            return DeleteResult(volume_id, DeleteOutcome.CONFIRMED, snapshots)
        except APIError as e:
            logger.error(f"Delete request for volume {name} rejected: {e}")
            return DeleteResult(volume_id, DeleteOutcome.REJECTED, snapshots, state.status)

        logger.info(f"Delete requested for volume {name}, waiting for removal")
        return self._wait_for_removal(volume_id, name, snapshots)

    def find_snapshots(self, volume_id: str) -> list[Snapshot]:
        """Snapshots referencing the volume; empty if they cannot be listed."""
        try:
            return [Snapshot.from_api(s) for s in self.api.list_snapshots(volume_id)]
        except (APIError, KeyError) as e:
            logger.warning(f"Could not list snapshots of volume {volume_id}: {e}")
            return []

    def _wait_for_removal(self, volume_id: str, name: str, snapshots: list[Snapshot]) -> DeleteResult:
        last_status = None

        for attempt in range(1, self.max_polls + 1):
            time.sleep(self.poll_interval)

            state = self.probe.check_status(volume_id)
            if state is None:
                continue

            if not state.exists:
                logger.info(f"Volume {name} deleted (confirmed after {attempt} poll(s))")
                return DeleteResult(volume_id, DeleteOutcome.CONFIRMED, snapshots)

            if state.status != last_status and state.status in ERROR_STATUSES:
                # Request was accepted; the platform may still recover
                logger.warning(f"Volume {name} reports status '{state.status}' while deleting")
            last_status = state.status

        logger.warning(
            f"Volume {name} still present after {self.max_polls} poll(s) "
            f"(last status: {last_status}). Deletion was accepted; assuming it completes."
        )
        return DeleteResult(volume_id, DeleteOutcome.ASSUMED, snapshots, last_status)
