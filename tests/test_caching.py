"""Tests for the Redis cache helpers."""

from unittest.mock import MagicMock

import redis

from appointment_service.core.redis_client import CacheManager


def test_cache_manager_get_json():
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    # Cache miss
    mock_redis.get.return_value = None
    assert cache_manager.get_json("doctor:D001") is None
    mock_redis.get.assert_called_once_with("doctor:D001")

    # Cache hit
    mock_redis.reset_mock()
    mock_redis.get.return_value = '{"id": "D001", "full_name": "Dr. Smith"}'
    assert cache_manager.get_json("doctor:D001") == {"id": "D001", "full_name": "Dr. Smith"}


def test_cache_manager_set_json():
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    assert cache_manager.set_json("doctor:D001", {"id": "D001"}) is True
    mock_redis.set.assert_called_once_with("doctor:D001", '{"id": "D001"}')

    mock_redis.reset_mock()
    assert cache_manager.set_json("doctor:D001", {"id": "D001"}, ttl=900) is True
    mock_redis.setex.assert_called_once_with("doctor:D001", 900, '{"id": "D001"}')


def test_cache_manager_fails_soft_when_redis_is_down():
    mock_redis = MagicMock()
    mock_redis.get.side_effect = redis.ConnectionError("refused")
    mock_redis.setex.side_effect = redis.ConnectionError("refused")
    cache_manager = CacheManager(redis_client=mock_redis)

    assert cache_manager.get_json("doctor:D001") is None
    assert cache_manager.set_json("doctor:D001", {"id": "D001"}, ttl=900) is False


def test_cache_manager_get_json_ignores_corrupt_entries():
    mock_redis = MagicMock()
    mock_redis.get.return_value = "{not json"
    cache_manager = CacheManager(redis_client=mock_redis)

    assert cache_manager.get_json("doctor:D001") is None
