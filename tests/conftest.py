"""
Shared pytest fixtures for the stackdash-volumes test suite

Provides:
- A clean environment (no OS_* / STACKDASH_* variables leak in)
- A fake monotonic clock that advances on time.sleep
- A MagicMock API client and volume/snapshot data factories
- Configuration fixtures
"""

import os
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock, patch

import pytest


TEST_AUTH_URL = "https://keystone.test.local:5000"
TEST_VOLUME_URL = "https://cinder.test.local:8776/v3/proj-123"
TEST_COMPUTE_URL = "https://nova.test.local:8774/v2.1"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove OpenStack and stackdash variables from the environment"""
    for key in list(os.environ):
        if key.startswith("OS_") or key.startswith("STACKDASH_"):
            monkeypatch.delenv(key, raising=False)


class FakeClock:
    """Monotonic clock that only moves when something sleeps"""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock():
    """Patch time.sleep and time.monotonic with a FakeClock"""
    clock = FakeClock()
    with patch("time.sleep", clock.sleep), patch("time.monotonic", clock.monotonic):
        yield clock


# Data factories

class VolumeFactory:
    """Factory for block-storage volume documents as the API returns them"""

    @staticmethod
    def attachment(
        server_id: str = "i1",
        attachment_id: Optional[str] = None,
        device: str = "/dev/vdb",
    ) -> Dict[str, Any]:
        return {
            "attachment_id": attachment_id or f"att-{server_id}",
            "server_id": server_id,
            "device": device,
        }

    @staticmethod
    def create(
        volume_id: str = "v1",
        status: str = "available",
        attachments: Optional[List[Dict[str, Any]]] = None,
        attach_status: Optional[str] = None,
        **kwargs
    ) -> Dict[str, Any]:
        """Create a volume dict with defaults"""
        attachments = attachments or []
        if attach_status is None:
            attach_status = "attached" if attachments else "detached"

        volume = {
            "id": volume_id,
            "name": f"volume-{volume_id}",
            "status": status,
            "attach_status": attach_status,
            "attachments": attachments,
            "size": 10,
            "volume_type": "__DEFAULT__",
            "os-vol-tenant-attr:tenant_id": "proj-123",
        }
        volume.update(kwargs)
        return volume

    @classmethod
    def attached(cls, volume_id: str = "v1", server_ids: tuple = ("i1",), **kwargs) -> Dict[str, Any]:
        kwargs.setdefault("status", "in-use")
        return cls.create(
            volume_id,
            attachments=[cls.attachment(s) for s in server_ids],
            **kwargs
        )


class SnapshotFactory:
    """Factory for snapshot documents"""

    @staticmethod
    def create(snapshot_id: str = "snap-1", volume_id: str = "v1", status: str = "available", **kwargs) -> Dict[str, Any]:
        snapshot = {
            "id": snapshot_id,
            "volume_id": volume_id,
            "status": status,
            "name": f"snapshot-{snapshot_id}",
            "size": 10,
        }
        snapshot.update(kwargs)
        return snapshot


@pytest.fixture
def volume_factory():
    return VolumeFactory()


@pytest.fixture
def snapshot_factory():
    return SnapshotFactory()


@pytest.fixture
def mock_api():
    """MagicMock standing in for APIClient; no snapshots by default"""
    api = MagicMock()
    api.list_snapshots.return_value = []
    return api


# Configuration fixtures

@pytest.fixture
def config_file(tmp_path):
    """Path for a config file that does not exist yet"""
    return tmp_path / "stackdash" / "volumes.json"


@pytest.fixture
def test_config(config_file):
    """Config with credentials and explicit endpoints"""
    from stackdash_volumes.config import Config

    return Config(
        config_file=config_file,
        auth_url=TEST_AUTH_URL,
        username="admin",
        password="secret",
        project_name="admin",
        region_name="RegionOne",
    )
