"""Unit tests for counter store adapters and state serialization."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from ratelock.adapters.store.file import FileCounterStore
from ratelock.adapters.store.in_memory import InMemoryCounterStore
from ratelock.adapters.store.redis import RedisCounterStore
from ratelock.core.errors import StoreError
from ratelock.schemas.limiter import (
    SlidingWindowState,
    TokenBucketState,
    dump_state,
    load_state,
)


def test_in_memory_store_get_put_and_clear() -> None:
    store = InMemoryCounterStore()

    assert store.get("k") is None
    store.put("k", b"v1")
    store.put("k", b"v2")
    assert store.get("k") == b"v2"

    store.clear()
    assert store.get("k") is None


def test_file_store_persists_across_instances(tmp_path: Path) -> None:
    first = FileCounterStore(tmp_path / "state")
    first.put("api:github", b"payload")

    second = FileCounterStore(tmp_path / "state")

    assert second.get("api:github") == b"payload"
    assert second.get("api:other") is None


def test_file_store_leaves_no_temp_files(tmp_path: Path) -> None:
    store = FileCounterStore(tmp_path)
    store.put("a/b:c", b"1")
    store.put("a/b:c", b"2")

    names = [p.name for p in tmp_path.iterdir()]
    assert len(names) == 1
    assert names[0].endswith(".state")
    assert store.get("a/b:c") == b"2"


def test_file_store_read_failure_raises_store_error(tmp_path: Path) -> None:
    store = FileCounterStore(tmp_path)
    # A directory where the state file should be makes the read fail.
    store._path_for("k").mkdir(parents=True)

    with pytest.raises(StoreError) as exc_info:
        store.get("k")

    assert exc_info.value.details["backend"] == "file"


def test_file_store_write_failure_raises_store_error(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    store = FileCounterStore(blocker / "nested")

    with pytest.raises(StoreError):
        store.put("k", b"v")


def test_redis_store_prefixes_keys_and_sets_ttl() -> None:
    client = MagicMock()
    client.get.return_value = b"state"
    store = RedisCounterStore(client, key_prefix="p:", ttl_seconds=120)

    assert store.get("id") == b"state"
    store.put("id", b"new")

    client.get.assert_called_once_with("p:id")
    client.set.assert_called_once_with("p:id", b"new", ex=120)


def test_redis_store_returns_none_for_missing_key() -> None:
    client = MagicMock()
    client.get.return_value = None

    assert RedisCounterStore(client).get("id") is None


def test_redis_store_wraps_redis_errors() -> None:
    client = MagicMock()
    client.get.side_effect = RedisConnectionError("down")
    client.set.side_effect = RedisConnectionError("down")
    store = RedisCounterStore(client)

    with pytest.raises(StoreError):
        store.get("id")
    with pytest.raises(StoreError):
        store.put("id", b"v")


def test_redis_store_rejects_invalid_ttl() -> None:
    with pytest.raises(ValueError):
        RedisCounterStore(MagicMock(), ttl_seconds=0)


def test_state_serialization_keeps_policy_tag() -> None:
    window = SlidingWindowState(window_start=12.5, count=3)
    bucket = TokenBucketState(tokens=1.25, last_refill=99.0)

    assert load_state(dump_state(window), key="w") == window
    assert load_state(dump_state(bucket), key="b") == bucket
    assert b'"policy":"token_bucket"' in dump_state(bucket)


@pytest.mark.parametrize(
    "raw",
    [
        b"not json",
        b'{"policy": "unknown"}',
        b'{"policy": "sliding_window", "window_start": 1.0, "count": -1}',
    ],
)
def test_corrupt_state_raises_store_error(raw: bytes) -> None:
    with pytest.raises(StoreError) as exc_info:
        load_state(raw, key="k")

    assert exc_info.value.code == "store_corrupt_state"
