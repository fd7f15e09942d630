"""
Block-storage client for the stackdash operator dashboard
"""

# Configuration
from .config import Config, load_config

# Transport
from .api_client import APIClient

# Volume state
from .models import (
    Attachment,
    CleanupResult,
    DeleteOutcome,
    DeleteResult,
    DetachResult,
    Snapshot,
    VolumeState,
)
from .status import ConvergenceWaiter, StatusProbe, is_detached

# Lifecycle orchestration
from .detach import DetachOrchestrator, DetachTier
from .delete import DeleteOrchestrator
from .emergency import EmergencyCleanup
from .manager import VolumeLifecycleManager

# Errors
from .errors import (
    APIError,
    AuthenticationError,
    BadRequestError,
    ConfigError,
    ConflictError,
    EndpointNotFoundError,
    NotFoundError,
    PermissionDeniedError,
    StackDashError,
    TransportError,
    VolumeInUseError,
    VolumeLifecycleError,
    VolumeStateUnknownError,
)

__all__ = [
    # Configuration
    "Config",
    "load_config",
    # Transport
    "APIClient",
    # Volume state
    "Attachment",
    "CleanupResult",
    "DeleteOutcome",
    "DeleteResult",
    "DetachResult",
    "Snapshot",
    "VolumeState",
    "StatusProbe",
    "ConvergenceWaiter",
    "is_detached",
    # Lifecycle
    "DetachOrchestrator",
    "DetachTier",
    "DeleteOrchestrator",
    "EmergencyCleanup",
    "VolumeLifecycleManager",
    # Errors
    "StackDashError",
    "ConfigError",
    "APIError",
    "TransportError",
    "BadRequestError",
    "AuthenticationError",
    "PermissionDeniedError",
    "NotFoundError",
    "ConflictError",
    "EndpointNotFoundError",
    "VolumeLifecycleError",
    "VolumeInUseError",
    "VolumeStateUnknownError",
]
