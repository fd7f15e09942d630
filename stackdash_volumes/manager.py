"""
Volume lifecycle facade.

Wires the probe, waiter and orchestrators together from a Config so callers
(the dashboard, the operator CLI) hold a single object.
"""

import logging

from .api_client import APIClient
from .config import Config
from .delete import DeleteOrchestrator, SnapshotConfirmation
from .detach import DetachOrchestrator
from .emergency import EmergencyCleanup
from .errors import VolumeInUseError, VolumeStateUnknownError
from .models import CleanupResult, DeleteResult, DetachResult, VolumeState
from .status import ConvergenceWaiter, StatusProbe

logger = logging.getLogger(__name__)


class VolumeLifecycleManager:
    """Safe detach, delete and emergency cleanup of block-storage volumes."""

    def __init__(self, api, config: Config):
        self.api = api
        self.config = config

        self.probe = StatusProbe(api)
        self.waiter = ConvergenceWaiter(self.probe, interval=config.timing("poll_interval"))
        self.detacher = DetachOrchestrator(
            api,
            self.probe,
            self.waiter,
            standard_timeout=config.timing("standard_detach_timeout"),
            force_timeout=config.timing("force_detach_timeout"),
            settle_delay=config.timing("settle_delay"),
        )
        self.deleter = DeleteOrchestrator(
            api,
            self.probe,
            poll_interval=config.timing("delete_poll_interval"),
            max_polls=int(config.timing("delete_max_polls")),
        )
        self.cleanup = EmergencyCleanup(api, self.probe, settle_delay=config.timing("cleanup_settle_delay"))

    @classmethod
    def from_config(cls, config: Config) -> "VolumeLifecycleManager":
        """Build a manager with an authenticated-on-demand APIClient"""
        config.require_credentials()
        return cls(APIClient(config), config)

    def check_status(self, volume_id: str) -> VolumeState | None:
        return self.probe.check_status(volume_id)

    def list_volumes(self, all_projects: bool | None = None) -> list[VolumeState]:
        if all_projects is None:
            all_projects = self.config.all_projects
        return [VolumeState.from_api(v) for v in self.api.list_volumes(all_projects=all_projects)]

    def safe_detach(self, instance_id: str | None, volume_id: str, label: str | None = None) -> bool:
        return self.detacher.safe_detach(instance_id, volume_id, label)

    def detach(self, instance_id: str | None, volume_id: str, label: str | None = None) -> DetachResult:
        return self.detacher.detach(instance_id, volume_id, label)

    def safe_delete(
        self,
        volume_id: str,
        label: str | None = None,
        confirm_snapshots: SnapshotConfirmation | None = None,
    ) -> DeleteResult:
        return self.deleter.safe_delete(volume_id, label, confirm_snapshots)

    def emergency_cleanup(self, volume_id: str, label: str | None = None) -> CleanupResult:
        return self.cleanup.emergency_cleanup(volume_id, label)

    def remove_volume(
        self,
        volume_id: str,
        label: str | None = None,
        confirm_snapshots: SnapshotConfirmation | None = None,
    ) -> DeleteResult:
        """
        Detach a volume from every server it is attached to, then delete it.

        Raises:
            VolumeStateUnknownError: If the volume cannot be read
            VolumeInUseError: If any detach did not converge
        """
        state = self.probe.check_status(volume_id)
        if state is None:
            raise VolumeStateUnknownError(volume_id, label)

        if state.exists and state.attachments:
            server_ids = state.server_ids or [None]
            for server_id in server_ids:
                result = self.detacher.detach(server_id, volume_id, label)
                if not result:
                    logger.error(
                        f"Could not detach volume {volume_id} from server {server_id} "
                        f"(tiers tried: {', '.join(result.attempted) or 'none'})"
                    )
                    raise VolumeInUseError(volume_id, state.attachments, label)

        return self.deleter.safe_delete(volume_id, label, confirm_snapshots)
