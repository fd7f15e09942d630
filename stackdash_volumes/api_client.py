"""API client for the compute and block-storage services"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import requests

from .config import Config
from .errors import (
    APIError,
    AuthenticationError,
    EndpointNotFoundError,
    TransportError,
    error_for_status,
)

logger = logging.getLogger(__name__)

COMPUTE = "compute"
VOLUME = "volume"

# Catalog service types to try for each logical service, in order
SERVICE_TYPES: Dict[str, List[str]] = {
    COMPUTE: ["compute"],
    VOLUME: ["volumev3", "block-storage", "volumev2", "volume"],
}

TOKEN_REFRESH_BUFFER = timedelta(minutes=5)
MIN_REQUEST_TIMEOUT = 1


class APIClient:
    """Authenticated client for the compute and block-storage APIs"""

    def __init__(self, config: Config, session: Optional[requests.Session] = None):
        """
        Initialize API client

        Args:
            config: Config with credentials, project scope and timings
            session: Optional requests session (one is created if omitted)
        """
        self.config = config
        self.session = session or requests.Session()
        self.timeout = config.timing("request_timeout")
        self.token: Optional[str] = None
        self.token_expires_at: Optional[datetime] = None
        self.project_id: Optional[str] = config.project_id
        self._catalog: List[Dict[str, Any]] = []
        self._endpoints: Dict[str, str] = {}

        # Explicit endpoints skip catalog discovery
        if config.compute_url:
            self._endpoints[COMPUTE] = config.compute_url
        if config.volume_url:
            self._endpoints[VOLUME] = config.volume_url

    # === Authentication ===

    def _auth_body(self) -> Dict[str, Any]:
        if self.config.project_id:
            project = {"id": self.config.project_id}
        else:
            project = {
                "name": self.config.project_name,
                "domain": {"name": self.config.project_domain_name},
            }
        return {
            "auth": {
                "identity": {
                    "methods": ["password"],
                    "password": {
                        "user": {
                            "name": self.config.username,
                            "domain": {"name": self.config.user_domain_name},
                            "password": self.config.password,
                        }
                    },
                },
                "scope": {"project": project},
            }
        }

    def _token_url(self) -> str:
        auth_url = self.config.auth_url
        if auth_url.endswith("/v3"):
            return f"{auth_url}/auth/tokens"
        return f"{auth_url}/v3/auth/tokens"

    def authenticate(self, force: bool = False) -> bool:
        """
        Obtain a project-scoped token and the service catalog

        Args:
            force: Re-authenticate even if the current token is still valid

        Returns:
            True if authentication succeeded

        Raises:
            AuthenticationError: If the identity service rejects the credentials
            TransportError: If the identity service cannot be reached
        """
        if not force and self._token_valid():
            return True

        self.config.require_credentials()
        url = self._token_url()

        try:
            response = self.session.post(url, json=self._auth_body(), timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"Failed to reach identity service: {e}", method="POST", url=url)

        if response.status_code not in (200, 201):
            message = _error_message(response)
            if response.status_code in (401, 403):
                raise AuthenticationError(message, response.status_code, "POST", url)
            raise error_for_status(response.status_code)(message, response.status_code, "POST", url)

        try:
            token_data = response.json()["token"]
            self.token = response.headers["X-Subject-Token"]
        except (ValueError, KeyError) as e:
            raise AuthenticationError(f"Malformed token response: {e}", response.status_code, "POST", url)

        self.token_expires_at = _parse_timestamp(token_data.get("expires_at"))
        self.project_id = (token_data.get("project") or {}).get("id") or self.project_id
        self._catalog = token_data.get("catalog") or []

        # Catalog endpoints are resolved lazily and cached; drop discovered ones
        # from a previous token but keep explicit overrides
        overrides = {COMPUTE: self.config.compute_url, VOLUME: self.config.volume_url}
        self._endpoints = {service: url for service, url in overrides.items() if url}

        logger.info(
            f"Authenticated as {self.config.username} "
            f"(project {self.project_id}, expires {token_data.get('expires_at')})"
        )
        return True

    def _token_valid(self) -> bool:
        if not self.token:
            return False
        if self.token_expires_at is None:
            return True
        return self.token_expires_at > datetime.now(timezone.utc) + TOKEN_REFRESH_BUFFER

    def _ensure_authenticated(self) -> None:
        """Ensure we have a valid token, authenticating if necessary"""
        if not self._token_valid():
            self.authenticate()

    # === Endpoint discovery ===

    def endpoint_for(self, service: str) -> str:
        """
        Resolve the base URL for a logical service (compute or volume)

        Resolved once per token from the service catalog, then cached.

        Raises:
            EndpointNotFoundError: If the catalog has no matching endpoint
        """
        if service in self._endpoints:
            return self._endpoints[service]

        self._ensure_authenticated()
        if service in self._endpoints:
            return self._endpoints[service]

        interface = self.config.interface
        region = self.config.region_name

        for service_type in SERVICE_TYPES[service]:
            for entry in self._catalog:
                if entry.get("type") != service_type:
                    continue
                for endpoint in entry.get("endpoints", []):
                    if endpoint.get("interface") != interface:
                        continue
                    if region and endpoint.get("region_id", endpoint.get("region")) != region:
                        continue
                    url = endpoint["url"].rstrip("/")
                    logger.debug(f"Discovered {service} endpoint ({service_type}): {url}")
                    self._endpoints[service] = url
                    return url

        raise EndpointNotFoundError(
            f"No {interface} endpoint for service types {SERVICE_TYPES[service]}"
            + (f" in region {region}" if region else "")
        )

    # === Requests ===

    def _make_request(
        self,
        service: str,
        method: str,
        path: str,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Make an authenticated request against a service

        Args:
            service: COMPUTE or VOLUME
            method: HTTP method
            path: Path below the service endpoint (e.g. "/volumes/abc")
            data: JSON request body
            params: Query parameters
            timeout: Per-request timeout in seconds, capped at the client default

        Returns:
            Decoded JSON body, or an empty dict for bodiless responses

        Raises:
            APIError: A subclass matching the failure kind
        """
        url = f"{self.endpoint_for(service)}{path}"

        response = self._send(method, url, data, params, timeout)

        # Token may have been revoked server side; re-authenticate once
        if response.status_code == 401:
            logger.info(f"Token rejected for {method} {url}, re-authenticating")
            self.authenticate(force=True)
            response = self._send(method, url, data, params, timeout)

        if not response.ok:
            raise error_for_status(response.status_code)(
                _error_message(response), response.status_code, method, url
            )

        if response.status_code == 204 or not response.content:
            return {}

        try:
            return response.json()
        except ValueError as e:
            raise APIError(f"Invalid JSON in response: {e}", response.status_code, method, url)

    def _send(
        self,
        method: str,
        url: str,
        data: Optional[Dict[str, Any]],
        params: Optional[Dict[str, Any]],
        timeout: Optional[float] = None,
    ) -> requests.Response:
        self._ensure_authenticated()
        headers = {
            "X-Auth-Token": self.token,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        try:
            return self.session.request(
                method=method,
                url=url,
                headers=headers,
                json=data,
                params=params,
                timeout=self._request_timeout(timeout),
            )
        except requests.RequestException as e:
            raise TransportError(str(e), method=method, url=url)

    def _request_timeout(self, timeout: Optional[float]) -> float:
        if timeout is None:
            return self.timeout
        return max(min(self.timeout, timeout), MIN_REQUEST_TIMEOUT)

    # === Block storage ===

    def get_volume(self, volume_id: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Get a single volume

        Returns:
            The "volume" object, e.g.
            {
                "id": "2f1c...",
                "status": "in-use",
                "attach_status": "attached",
                "attachments": [
                    {"attachment_id": "9a0e...", "server_id": "b71d...", "device": "/dev/vdb"}
                ],
                "size": 10,
                ...
            }
        """
        return self._make_request(VOLUME, "GET", f"/volumes/{volume_id}", timeout=timeout)["volume"]

    def list_volumes(self, all_projects: bool = False) -> List[Dict[str, Any]]:
        """List volumes with details; all_projects requires an admin role"""
        params = {"all_tenants": 1} if all_projects else None
        return self._make_request(VOLUME, "GET", "/volumes/detail", params=params).get("volumes", [])

    def delete_volume(self, volume_id: str) -> None:
        """Request asynchronous deletion of a volume"""
        self._make_request(VOLUME, "DELETE", f"/volumes/{volume_id}")

    def volume_action(self, volume_id: str, action: str, body: Optional[Dict[str, Any]] = None) -> None:
        """POST a volume action such as os-force_detach or os-reset_status"""
        self._make_request(VOLUME, "POST", f"/volumes/{volume_id}/action", data={action: body or {}})

    def force_detach_volume(self, volume_id: str, attachment_id: Optional[str] = None) -> None:
        """Force-detach through the storage API, bypassing the compute service"""
        body: Dict[str, Any] = {"connector": None}
        if attachment_id:
            body["attachment_id"] = attachment_id
        self.volume_action(volume_id, "os-force_detach", body)

    def detach_volume(self, volume_id: str, attachment_id: Optional[str] = None) -> None:
        """Mark a single attachment detached through the storage API"""
        body = {"attachment_id": attachment_id} if attachment_id else {}
        self.volume_action(volume_id, "os-detach", body)

    def reset_volume_status(
        self,
        volume_id: str,
        status: str = "available",
        attach_status: Optional[str] = "detached",
    ) -> None:
        """Rewrite status (and attach_status) without touching attachment records"""
        body = {"status": status}
        if attach_status:
            body["attach_status"] = attach_status
        self.volume_action(volume_id, "os-reset_status", body)

    def list_snapshots(self, volume_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        List snapshots, optionally only those of one volume

        The volume_id filter is also applied client side because some
        deployments ignore unknown query filters.
        """
        params = {"volume_id": volume_id} if volume_id else None
        snapshots = self._make_request(VOLUME, "GET", "/snapshots/detail", params=params).get("snapshots", [])
        if volume_id:
            snapshots = [s for s in snapshots if s.get("volume_id") == volume_id]
        return snapshots

    # === Compute ===

    def remove_volume_attachment(self, server_id: str, volume_id: str) -> None:
        """Detach a volume from a server through the compute API"""
        self._make_request(COMPUTE, "DELETE", f"/servers/{server_id}/os-volume_attachments/{volume_id}")


def _error_message(response: requests.Response) -> str:
    """Pull a readable message out of an OpenStack error body"""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason or "Unknown error"

    if isinstance(body, dict):
        # {"itemNotFound": {"message": ..., "code": 404}} or {"error": {"message": ...}}
        for value in body.values():
            if isinstance(value, dict) and value.get("message"):
                return value["message"]
        if body.get("message"):
            return body["message"]
    return response.text or "Unknown error"


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Could not parse token expiry {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
