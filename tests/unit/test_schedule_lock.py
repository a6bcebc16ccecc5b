"""Unit tests for the Redis day mutex."""

from datetime import date
from unittest.mock import MagicMock, patch

import pytest

from autoecole.core import schedule_lock as lock_module

DAY = date(2026, 3, 3)


@pytest.mark.unit
class TestScheduleLock:
    def test_fails_open_without_redis(self):
        with patch.object(lock_module, "_get_sync_redis", return_value=None):
            assert lock_module.acquire_schedule_lock("instructor-1", DAY) is True

    def test_acquire_uses_namespaced_key_with_nx_and_ttl(self):
        client = MagicMock()
        client.set.return_value = True
        with patch.object(lock_module, "_get_sync_redis", return_value=client):
            assert lock_module.acquire_schedule_lock("instructor-1", DAY, ttl_s=12) is True

        args, kwargs = client.set.call_args
        assert args[0] == "autoecole:lock:schedule:instructor-1:2026-03-03:mutex"
        assert kwargs == {"nx": True, "ex": 12}

    def test_blocked_when_key_exists(self):
        client = MagicMock()
        client.set.return_value = None
        with patch.object(lock_module, "_get_sync_redis", return_value=client):
            assert lock_module.acquire_schedule_lock("instructor-1", DAY) is False

    def test_fails_open_on_redis_error(self):
        client = MagicMock()
        client.set.side_effect = ConnectionError("redis down")
        with patch.object(lock_module, "_get_sync_redis", return_value=client):
            assert lock_module.acquire_schedule_lock("instructor-1", DAY) is True

    def test_context_manager_releases_after_use(self):
        client = MagicMock()
        client.set.return_value = True
        with patch.object(lock_module, "_get_sync_redis", return_value=client):
            with lock_module.schedule_lock("instructor-1", DAY) as acquired:
                assert acquired
            client.delete.assert_called_once_with(
                "autoecole:lock:schedule:instructor-1:2026-03-03:mutex"
            )

    def test_context_manager_does_not_release_unowned_lock(self):
        client = MagicMock()
        client.set.return_value = False
        with patch.object(lock_module, "_get_sync_redis", return_value=client):
            with lock_module.schedule_lock("instructor-1", DAY) as acquired:
                assert not acquired
        client.delete.assert_not_called()

    def test_release_swallows_redis_errors(self):
        client = MagicMock()
        client.delete.side_effect = ConnectionError("redis down")
        with patch.object(lock_module, "_get_sync_redis", return_value=client):
            lock_module.release_schedule_lock("instructor-1", DAY)
