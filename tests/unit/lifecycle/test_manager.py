"""
Unit tests for stackdash_volumes.manager

Tests:
- Wiring of timings from Config
- remove_volume: detach from every server, then delete
"""

from unittest.mock import MagicMock, patch

import pytest


@pytest.fixture
def manager(mock_api, test_config):
    from stackdash_volumes.manager import VolumeLifecycleManager
    return VolumeLifecycleManager(mock_api, test_config)


class TestWiring:
    """Tests for VolumeLifecycleManager construction"""

    def test_timings_come_from_config(self, mock_api, config_file):
        from stackdash_volumes.config import Config
        from stackdash_volumes.manager import VolumeLifecycleManager

        config = Config(
            config_file=config_file,
            poll_interval=1,
            standard_detach_timeout=8,
            force_detach_timeout=4,
            delete_max_polls=5,
            cleanup_settle_delay=2,
        )
        manager = VolumeLifecycleManager(mock_api, config)

        assert manager.waiter.interval == 1
        assert manager.detacher.standard_timeout == 8
        assert manager.detacher.force_timeout == 4
        assert manager.deleter.max_polls == 5
        assert manager.cleanup.settle_delay == 2
        assert manager.detacher.probe is manager.probe
        assert manager.deleter.probe is manager.probe

    def test_from_config_requires_credentials(self, config_file):
        from stackdash_volumes.config import Config
        from stackdash_volumes.errors import ConfigError
        from stackdash_volumes.manager import VolumeLifecycleManager

        with pytest.raises(ConfigError, match="OS_AUTH_URL"):
            VolumeLifecycleManager.from_config(Config(config_file=config_file))

    def test_from_config_builds_api_client(self, test_config):
        from stackdash_volumes.api_client import APIClient
        from stackdash_volumes.manager import VolumeLifecycleManager

        manager = VolumeLifecycleManager.from_config(test_config)

        assert isinstance(manager.api, APIClient)
        assert manager.api.config is test_config

    def test_list_volumes_uses_config_default(self, mock_api, config_file, volume_factory):
        from stackdash_volumes.config import Config
        from stackdash_volumes.manager import VolumeLifecycleManager

        mock_api.list_volumes.return_value = [volume_factory.create("v1"), volume_factory.attached("v2")]
        manager = VolumeLifecycleManager(mock_api, Config(config_file=config_file, all_projects=True))

        volumes = manager.list_volumes()

        mock_api.list_volumes.assert_called_once_with(all_projects=True)
        assert [v.volume_id for v in volumes] == ["v1", "v2"]
        assert volumes[1].server_ids == ["i1"]


class TestRemoveVolume:
    """Tests for remove_volume"""

    def test_detached_volume_goes_straight_to_delete(self, manager, mock_api, volume_factory):
        from stackdash_volumes.models import DeleteOutcome, DeleteResult

        mock_api.get_volume.return_value = volume_factory.create("v1")

        with patch.object(manager.deleter, "safe_delete", return_value=DeleteResult("v1", DeleteOutcome.CONFIRMED)) as delete:
            with patch.object(manager.detacher, "detach") as detach:
                result = manager.remove_volume("v1", label="data")

        detach.assert_not_called()
        delete.assert_called_once_with("v1", "data", None)
        assert result.confirmed is True

    def test_detaches_from_every_server_first(self, manager, mock_api, volume_factory):
        from stackdash_volumes.models import DeleteOutcome, DeleteResult, DetachResult

        mock_api.get_volume.return_value = volume_factory.attached("v1", server_ids=("i1", "i2"))
        confirm = MagicMock(return_value=True)
        calls = []

        def detach(server_id, volume_id, label):
            calls.append(("detach", server_id))
            return DetachResult(volume_id, True, tier="standard")

        def delete(volume_id, label, confirm_snapshots):
            calls.append(("delete", volume_id))
            return DeleteResult(volume_id, DeleteOutcome.ASSUMED)

        with patch.object(manager.detacher, "detach", side_effect=detach):
            with patch.object(manager.deleter, "safe_delete", side_effect=delete) as safe_delete:
                result = manager.remove_volume("v1", confirm_snapshots=confirm)

        assert calls == [("detach", "i1"), ("detach", "i2"), ("delete", "v1")]
        assert safe_delete.call_args.args[2] is confirm
        assert result.success is True

    def test_failed_detach_raises_volume_in_use(self, manager, mock_api, volume_factory):
        from stackdash_volumes.errors import VolumeInUseError
        from stackdash_volumes.models import DetachResult

        mock_api.get_volume.return_value = volume_factory.attached("v1")

        with patch.object(manager.detacher, "detach", return_value=DetachResult("v1", False, attempted=["standard"])):
            with patch.object(manager.deleter, "safe_delete") as delete:
                with pytest.raises(VolumeInUseError):
                    manager.remove_volume("v1")

        delete.assert_not_called()
        mock_api.delete_volume.assert_not_called()

    def test_unreadable_volume_raises_state_unknown(self, manager, mock_api):
        from stackdash_volumes.errors import TransportError, VolumeStateUnknownError

        mock_api.get_volume.side_effect = TransportError("connection refused")

        with pytest.raises(VolumeStateUnknownError):
            manager.remove_volume("v1")

    def test_end_to_end_detach_then_delete(self, manager, mock_api, volume_factory, fake_clock):
        """Standard detach converges, then the delete sees a 404 on its first poll"""
        from stackdash_volumes.errors import NotFoundError

        mock_api.get_volume.side_effect = [
            volume_factory.attached("v1"),          # remove_volume read
            volume_factory.attached("v1"),          # detach fast-path read
            volume_factory.create("v1"),            # standard tier converges
            volume_factory.create("v1"),            # delete precondition read
            NotFoundError("gone", 404),             # first delete poll
        ]

        result = manager.remove_volume("v1")

        assert result.confirmed is True
        mock_api.remove_volume_attachment.assert_called_once_with("i1", "v1")
        mock_api.force_detach_volume.assert_not_called()
        mock_api.delete_volume.assert_called_once_with("v1")
