"""
Tiered detach for block-storage volumes.

A volume attached to a server is driven to "available" by an ordered ladder
of tiers, each more forceful than the last:

1. standard        compute API removes the attachment, then wait
2. force-detach    storage API os-force_detach, then wait
3. per-attachment  remove every attachment record the storage API knows about
4. reset-status    storage API os-reset_status to available/detached

The driver stops at the first tier that converges. Tier failures are logged
and the next tier runs regardless, except for permission errors, which end
the ladder because no later tier can succeed without the role.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from .errors import APIError, NotFoundError, PermissionDeniedError
from .models import STATUS_AVAILABLE, DetachResult, VolumeState
from .status import ConvergenceWaiter, StatusProbe, is_detached

logger = logging.getLogger(__name__)

STANDARD_DETACH_TIMEOUT = 20
FORCE_DETACH_TIMEOUT = 15
SETTLE_DELAY = 3


def describe(volume_id: str, label: str | None = None) -> str:
    return f"'{label}' ({volume_id})" if label else volume_id


@dataclass
class DetachAttempt:
    """Everything a tier needs; state holds the most recent fresh read."""
    instance_id: str | None
    volume_id: str
    label: str | None = None
    state: VolumeState | None = None
    attempted: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return describe(self.volume_id, self.label)


@dataclass
class DetachTier:
    name: str
    run: Callable[[DetachAttempt], bool]


class DetachOrchestrator:
    """Drives an attached volume to available through escalating tiers."""

    def __init__(
        self,
        api,
        probe: StatusProbe,
        waiter: ConvergenceWaiter,
        standard_timeout: float = STANDARD_DETACH_TIMEOUT,
        force_timeout: float = FORCE_DETACH_TIMEOUT,
        settle_delay: float = SETTLE_DELAY,
    ):
        self.api = api
        self.probe = probe
        self.waiter = waiter
        self.standard_timeout = standard_timeout
        self.force_timeout = force_timeout
        self.settle_delay = settle_delay
        self.tiers: list[DetachTier] = [
            DetachTier("standard", self._standard_detach),
            DetachTier("force-detach", self._force_detach),
            DetachTier("per-attachment", self._per_attachment_teardown),
            DetachTier("reset-status", self._reset_status),
        ]

    def safe_detach(self, instance_id: str | None, volume_id: str, label: str | None = None) -> bool:
        """Detach a volume; True once it is confirmed available. Never raises."""
        return self.detach(instance_id, volume_id, label).success

    def detach(self, instance_id: str | None, volume_id: str, label: str | None = None) -> DetachResult:
        """
        Run the detach ladder and report which tier, if any, converged.

        Args:
            instance_id: Server the volume is expected to be attached to
            volume_id: Volume to detach
            label: Human-readable name used in log messages

        Returns:
            DetachResult (truthy on success)
        """
        attempt = DetachAttempt(instance_id=instance_id, volume_id=volume_id, label=label)
        result = DetachResult(volume_id=volume_id, success=False, attempted=attempt.attempted)

        if not volume_id:
            logger.error(f"Refusing to detach: empty volume id (instance {instance_id})")
            return result

        try:
            attempt.state = self.probe.check_status(volume_id)
        except Exception as e:
            logger.warning(f"Initial read of volume {attempt.name} failed: {e}", exc_info=True)

        if attempt.state is not None and not attempt.state.exists:
            logger.info(f"Volume {attempt.name} no longer exists, nothing to detach")
            result.success = True
            result.tier = "not-found"
            return result

        if is_detached(attempt.state):
            logger.info(f"Volume {attempt.name} is already detached")
            result.success = True
            result.tier = "already-detached"
            return result

        for tier in self.tiers:
            attempt.attempted.append(tier.name)
            logger.info(f"Detaching volume {attempt.name}: trying tier '{tier.name}'")

            try:
                converged = tier.run(attempt)
            except PermissionDeniedError as e:
                logger.error(
                    f"Permission denied during tier '{tier.name}' for volume {attempt.name}: {e}. "
                    f"Not escalating further."
                )
                result.permission_denied = True
                return result
            except Exception as e:
                logger.warning(
                    f"Tier '{tier.name}' failed for volume {attempt.name}: {e}",
                    exc_info=True,
                )
                converged = False

            if converged:
                logger.info(f"Volume {attempt.name} detached by tier '{tier.name}'")
                result.success = True
                result.tier = tier.name
                return result

            logger.warning(f"Tier '{tier.name}' did not detach volume {attempt.name}")

        logger.error(
            f"All detach tiers failed for volume {attempt.name}. "
            f"Emergency cleanup is the remaining option."
        )
        return result

    # === Tiers ===

    def _standard_detach(self, attempt: DetachAttempt) -> bool:
        if not attempt.instance_id:
            logger.info(f"No instance given for volume {attempt.name}, skipping standard detach")
            return False

        try:
            self.api.remove_volume_attachment(attempt.instance_id, attempt.volume_id)
        except NotFoundError:
            # Compute service has no record; storage may still be catching up
            logger.info(
                f"Compute API reports no attachment of {attempt.name} "
                f"on {attempt.instance_id}, waiting for storage to converge"
            )
        except PermissionDeniedError:
            raise
        except APIError as e:
            logger.warning(f"Standard detach of {attempt.name} rejected: {e}")
            return False

        return self.waiter.wait_until(attempt.volume_id, is_detached, self.standard_timeout)

    def _force_detach(self, attempt: DetachAttempt) -> bool:
        state = self.probe.check_status(attempt.volume_id)
        if state is not None:
            if not state.exists:
                return True
            attempt.state = state

        attachment_id = None
        if attempt.state is not None:
            for attachment in attempt.state.attachments:
                if attachment.server_id == attempt.instance_id:
                    attachment_id = attachment.attachment_id
                    break

        try:
            self.api.force_detach_volume(attempt.volume_id, attachment_id)
        except PermissionDeniedError:
            raise
        except APIError as e:
            logger.warning(f"Force detach of {attempt.name} rejected: {e}")
            return False

        return self.waiter.wait_until(attempt.volume_id, is_detached, self.force_timeout)

    def _per_attachment_teardown(self, attempt: DetachAttempt) -> bool:
        state = self.probe.check_status(attempt.volume_id)
        if state is None:
            logger.warning(f"Cannot read volume {attempt.name}, skipping per-attachment teardown")
            return False
        if not state.exists:
            return True
        attempt.state = state

        for attachment in state.attachments:
            self._remove_attachment(attempt, attachment)

        time.sleep(self.settle_delay)

        state = self.probe.check_status(attempt.volume_id)
        if state is None:
            return False
        attempt.state = state
        return not state.exists or not state.attachments

    def _remove_attachment(self, attempt: DetachAttempt, attachment) -> None:
        if attachment.server_id:
            try:
                self.api.remove_volume_attachment(attachment.server_id, attempt.volume_id)
                logger.info(f"Removed attachment of {attempt.name} on server {attachment.server_id}")
                return
            except PermissionDeniedError:
                raise
            except APIError as e:
                logger.warning(
                    f"Compute API could not remove attachment of {attempt.name} "
                    f"on server {attachment.server_id}: {e}"
                )

        if not attachment.attachment_id:
            return

        try:
            self.api.detach_volume(attempt.volume_id, attachment.attachment_id)
            logger.info(f"Storage API detached attachment {attachment.attachment_id} of {attempt.name}")
        except PermissionDeniedError:
            raise
        except APIError as e:
            logger.warning(f"Storage API could not detach attachment {attachment.attachment_id}: {e}")

    def _reset_status(self, attempt: DetachAttempt) -> bool:
        try:
            self.api.reset_volume_status(attempt.volume_id, status=STATUS_AVAILABLE, attach_status="detached")
        except PermissionDeniedError:
            raise
        except APIError as e:
            logger.warning(f"Status reset of {attempt.name} rejected: {e}")
            return False

        time.sleep(self.settle_delay)

        state = self.probe.check_status(attempt.volume_id)
        if state is None:
            return False
        attempt.state = state
        return state.exists and state.status == STATUS_AVAILABLE
