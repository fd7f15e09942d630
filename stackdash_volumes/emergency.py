"""
Last-resort cleanup for a volume that the detach ladder could not free.

Removes every attachment without checking results, then rewrites the volume
status to available/detached. Always reports success: the caller has no
further fallback, so a result that could not be confirmed is flagged as
partial rather than failed.
"""

import logging
import time

from .errors import APIError
from .models import STATUS_AVAILABLE, CleanupResult
from .status import StatusProbe

logger = logging.getLogger(__name__)

CLEANUP_SETTLE_DELAY = 5


class EmergencyCleanup:

    def __init__(self, api, probe: StatusProbe, settle_delay: float = CLEANUP_SETTLE_DELAY):
        self.api = api
        self.probe = probe
        self.settle_delay = settle_delay

    def emergency_cleanup(self, volume_id: str, label: str | None = None) -> CleanupResult:
        if not volume_id:
            raise ValueError("volume_id must not be empty")

        name = f"'{label}' ({volume_id})" if label else volume_id
        logger.warning(f"Running emergency cleanup for volume {name}")

        failed = []
        state = self.probe.check_status(volume_id)
        if state is None:
            logger.warning(f"Cannot read attachments of volume {name}, resetting status only")
        else:
            for attachment in state.attachments:
                if not attachment.server_id:
                    failed.append(attachment)
                    continue
                try:
                    self.api.remove_volume_attachment(attachment.server_id, volume_id)
                except APIError as e:
                    logger.warning(
                        f"Ignoring failed attachment removal of {name} "
                        f"on server {attachment.server_id}: {e}"
                    )
                    failed.append(attachment)

        time.sleep(self.settle_delay)

        try:
            self.api.reset_volume_status(volume_id, status=STATUS_AVAILABLE, attach_status="detached")
        except APIError as e:
            logger.warning(f"Ignoring failed status reset of volume {name}: {e}")

        final = self.probe.check_status(volume_id)
        final_status = final.status if final is not None else None
        confirmed = final is not None and final.exists and final.status == STATUS_AVAILABLE

        if confirmed:
            logger.info(f"Emergency cleanup of volume {name} complete: status available")
        else:
            logger.warning(
                f"Emergency cleanup of volume {name} partially succeeded: "
                f"final status {final_status or 'unknown'}"
            )

        return CleanupResult(
            volume_id=volume_id,
            confirmed=confirmed,
            final_status=final_status,
            failed_attachments=failed,
        )
