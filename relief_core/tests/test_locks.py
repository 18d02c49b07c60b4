# SPDX-License-Identifier: Apache-2.0

"""
Tests for keyed locks.
"""

import threading
import time
import pytest
from unittest.mock import Mock

import redis

from relief_core.exceptions import ConflictError
from relief_core.services.locks import KeyedLock, RedisKeyedLock


class TestKeyedLock:
    """Test in-process keyed locks."""

    def test_same_key_is_exclusive(self):
        """Test only one thread holds a key at a time."""
        locks = KeyedLock()
        inside = []
        overlaps = []
        guard = threading.Lock()

        def work():
            for _ in range(20):
                with locks.hold("resource-1"):
                    with guard:
                        inside.append(1)
                        if len(inside) > 1:
                            overlaps.append(len(inside))
                    time.sleep(0.0005)
                    with guard:
                        inside.pop()

        threads = [threading.Thread(target=work) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert overlaps == []

    def test_different_keys_do_not_contend(self):
        """Test holding one key does not block another."""
        locks = KeyedLock()
        acquired = threading.Event()

        def other():
            with locks.hold("center-2"):
                acquired.set()

        with locks.hold("center-1"):
            thread = threading.Thread(target=other)
            thread.start()
            assert acquired.wait(timeout=2)
            thread.join()

        assert len(locks) == 2

    def test_released_after_error(self):
        """Test the lock is released when the block raises."""
        locks = KeyedLock()

        with pytest.raises(RuntimeError):
            with locks.hold("resource-1"):
                raise RuntimeError("boom")

        with locks.hold("resource-1"):
            pass


class TestRedisKeyedLock:
    """Test Redis-backed keyed locks with a mocked client."""

    def setup_method(self):
        """Set up a lock over a mocked Redis client."""
        self.client = Mock()
        self.redis_lock = Mock()
        self.redis_lock.acquire.return_value = True
        self.client.lock.return_value = self.redis_lock
        self.locks = RedisKeyedLock(redis_url="redis://test:6379", timeout=5, blocking_timeout=1, client=self.client)

    def test_hold_acquires_and_releases(self):
        """Test the namespaced Redis lock wraps the block."""
        with self.locks.hold("resource-1"):
            self.redis_lock.release.assert_not_called()

        self.client.lock.assert_called_once_with("relief:lock:resource-1", timeout=5, blocking_timeout=1)
        self.redis_lock.release.assert_called_once()

    def test_acquire_timeout_raises_conflict(self):
        """Test failing to acquire raises a retryable ConflictError."""
        self.redis_lock.acquire.return_value = False
        entered = []

        with pytest.raises(ConflictError):
            with self.locks.hold("resource-1"):
                entered.append(1)

        assert entered == []
        self.redis_lock.release.assert_not_called()

    def test_expired_lock_release(self):
        """Test releasing an expired lock is logged, not raised."""
        self.redis_lock.release.side_effect = redis.exceptions.LockError("expired")

        with self.locks.hold("resource-1"):
            pass

    def test_health_check(self):
        """Test health check pings Redis."""
        assert self.locks.health_check() == {"status": "healthy"}

        self.client.ping.side_effect = redis.exceptions.ConnectionError("refused")
        health = self.locks.health_check()

        assert health["status"] == "unhealthy"
        assert "refused" in health["error"]
