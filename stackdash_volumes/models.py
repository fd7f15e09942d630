"""
Data classes for volume state as observed through the block-storage API.

The platform drives every status transition; these classes only describe what
a single read returned.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Volume statuses reported by the block-storage service
STATUS_CREATING = "creating"
STATUS_AVAILABLE = "available"
STATUS_IN_USE = "in-use"
STATUS_DELETING = "deleting"
STATUS_ERROR = "error"
STATUS_ERROR_DELETING = "error_deleting"

ERROR_STATUSES = {STATUS_ERROR, STATUS_ERROR_DELETING}

ATTACH_STATUS_ATTACHED = "attached"
ATTACH_STATUS_DETACHED = "detached"


@dataclass
class Attachment:
    """A record linking a volume to a server and a device path."""
    attachment_id: str | None
    server_id: str | None
    device: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Attachment":
        return cls(
            attachment_id=data.get("attachment_id") or data.get("id"),
            server_id=data.get("server_id"),
            device=data.get("device"),
        )


@dataclass
class VolumeState:
    """One observation of a volume."""
    volume_id: str
    status: str
    attach_status: str | None = None
    attachments: list[Attachment] = field(default_factory=list)
    name: str | None = None
    size: int | None = None
    volume_type: str | None = None
    project_id: str | None = None
    exists: bool = True

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "VolumeState":
        """
        Build a VolumeState from a block-storage volume document.

        Args:
            data: The "volume" object of a GET /volumes/{id} response

        Returns:
            Parsed VolumeState

        Raises:
            KeyError: If the document has no id or status
        """
        return cls(
            volume_id=data["id"],
            status=data["status"],
            attach_status=data.get("attach_status"),
            attachments=[Attachment.from_api(a) for a in data.get("attachments") or []],
            name=data.get("name"),
            size=data.get("size"),
            volume_type=data.get("volume_type"),
            project_id=data.get("os-vol-tenant-attr:tenant_id") or data.get("project_id"),
        )

    @classmethod
    def missing(cls, volume_id: str) -> "VolumeState":
        """State returned when the platform answers 404 for the volume."""
        return cls(volume_id=volume_id, status="not-found", exists=False)

    @property
    def is_attached(self) -> bool:
        # Attachments are authoritative; status can lag behind them
        return bool(self.attachments)

    @property
    def server_ids(self) -> list[str]:
        """Distinct server ids across attachments, in attachment order."""
        seen = []
        for attachment in self.attachments:
            if attachment.server_id and attachment.server_id not in seen:
                seen.append(attachment.server_id)
        return seen


@dataclass
class Snapshot:
    """A snapshot that references a volume."""
    snapshot_id: str
    volume_id: str | None
    status: str
    name: str | None = None
    size: int | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Snapshot":
        return cls(
            snapshot_id=data["id"],
            volume_id=data.get("volume_id"),
            status=data.get("status", "unknown"),
            name=data.get("name"),
            size=data.get("size"),
        )


class DeleteOutcome(Enum):
    """How a delete request ended, as far as the client could observe."""
    CONFIRMED = "confirmed"  # 404 observed after the request
    ASSUMED = "assumed"      # request accepted, removal not observed within budget
    DECLINED = "declined"    # caller chose not to delete after seeing snapshots
    REJECTED = "rejected"    # platform refused the delete request


@dataclass
class DeleteResult:
    volume_id: str
    outcome: DeleteOutcome
    snapshots: list[Snapshot] = field(default_factory=list)
    final_status: str | None = None

    @property
    def success(self) -> bool:
        return self.outcome in (DeleteOutcome.CONFIRMED, DeleteOutcome.ASSUMED)

    @property
    def confirmed(self) -> bool:
        return self.outcome is DeleteOutcome.CONFIRMED

    @property
    def snapshot_count(self) -> int:
        return len(self.snapshots)

    def __bool__(self) -> bool:
        return self.success


@dataclass
class DetachResult:
    """
    Outcome of a detach ladder run.

    tier is the name of the tier that converged ("already-detached" for the
    fast path, "not-found" when the volume no longer exists). attempted lists
    every tier that ran, in order.
    """
    volume_id: str
    success: bool
    tier: str | None = None
    permission_denied: bool = False
    attempted: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.success


@dataclass
class CleanupResult:
    """Outcome of an emergency cleanup. success is always True."""
    volume_id: str
    confirmed: bool
    final_status: str | None = None
    failed_attachments: list[Attachment] = field(default_factory=list)
    success: bool = True

    @property
    def partial(self) -> bool:
        return not self.confirmed

    def __bool__(self) -> bool:
        return self.success
