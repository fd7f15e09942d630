"""
Exception hierarchy for the block-storage client.

Two families:
- APIError and subclasses: raised by the transport layer (api_client) so that
  callers can match on the kind of failure instead of inspecting responses.
- VolumeLifecycleError and subclasses: hard stops raised by the lifecycle
  orchestrators and meant to reach the user interface.
"""


class StackDashError(Exception):
    """Base exception for everything raised by this package."""
    pass


class ConfigError(StackDashError):
    """Client configuration is missing or invalid."""
    pass


class APIError(StackDashError):
    """Remote API call failed."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        method: str | None = None,
        url: str | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.method = method
        self.url = url
        prefix = f"{method} {url}" if method and url else "API request"
        if status_code is not None:
            prefix = f"{prefix} [{status_code}]"
        super().__init__(f"{prefix}: {message}")


class TransportError(APIError):
    """Request never produced an HTTP response (connection, timeout, TLS)."""
    pass


class BadRequestError(APIError):
    """Platform rejected the request as malformed or invalid for the current state."""
    pass


class AuthenticationError(APIError):
    """Credentials were rejected, even after re-authenticating."""
    pass


class PermissionDeniedError(APIError):
    """Caller is authenticated but lacks the role for this action."""
    pass


class NotFoundError(APIError):
    """Resource does not exist (or no longer exists)."""
    pass


class ConflictError(APIError):
    """Resource is in a state that conflicts with the request."""
    pass


class EndpointNotFoundError(APIError):
    """Service catalog has no usable endpoint for a service type."""
    pass


ERRORS_BY_STATUS = {
    400: BadRequestError,
    401: AuthenticationError,
    403: PermissionDeniedError,
    404: NotFoundError,
    409: ConflictError,
}


def error_for_status(status_code: int) -> type[APIError]:
    """Map an HTTP status code to the matching APIError subclass."""
    return ERRORS_BY_STATUS.get(status_code, APIError)


class VolumeLifecycleError(StackDashError):
    """Base exception for lifecycle preconditions that stop an operation."""

    def __init__(self, message: str, volume_id: str, label: str | None = None):
        self.volume_id = volume_id
        self.label = label
        super().__init__(message)


class VolumeInUseError(VolumeLifecycleError):
    """Volume still has attachments and cannot be deleted."""

    def __init__(self, volume_id: str, attachments: list | None = None, label: str | None = None):
        self.attachments = list(attachments or [])
        servers = ", ".join(a.server_id for a in self.attachments if a.server_id) or "unknown"
        name = f"'{label}' ({volume_id})" if label else volume_id
        super().__init__(
            f"Volume {name} is attached to {len(self.attachments)} "
            f"server(s): {servers}. Detach it before deleting.",
            volume_id,
            label,
        )


class VolumeStateUnknownError(VolumeLifecycleError):
    """Volume state could not be read at all."""

    def __init__(self, volume_id: str, label: str | None = None):
        name = f"'{label}' ({volume_id})" if label else volume_id
        super().__init__(
            f"Could not read the current state of volume {name}",
            volume_id,
            label,
        )
