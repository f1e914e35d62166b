"""Tests for RedisIPBlockRepository (fakeredis)."""
import json
import uuid
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from ipguard.domain.enums import BlockKind
from ipguard.domain.errors import (
    AlreadyBlockedError,
    BlockNotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from ipguard.infrastructure.repositories.redis_ip_block_repository import RedisIPBlockRepository
from tests.conftest import T0, expire_block, make_block


def _down_client():
    client = MagicMock()
    down = RedisConnectionError("Connection refused")
    client.get.side_effect = down
    client.set.side_effect = down
    client.scan_iter.side_effect = down
    client.zcount.side_effect = down
    client.pipeline.return_value.execute.side_effect = down
    return client


class TestCreate:
    def test_stores_block_with_ttl(self, redis_repo, redis_client):
        block = make_block(seconds=1800)
        redis_repo.create(block)

        raw = redis_client.get("block:10.0.0.1")
        assert json.loads(raw)["id"] == block.id
        assert 1790 * 1000 < redis_client.pttl("block:10.0.0.1") <= 1800 * 1000
        assert redis_client.get(f"block_id:{block.id}") == "10.0.0.1"

    def test_permanent_rejected(self, redis_repo):
        with pytest.raises(ValidationError):
            redis_repo.create(make_block(kind=BlockKind.PERMANENT))

    def test_expired_block_rejected(self, redis_repo, clock):
        block = make_block(seconds=5)
        clock.advance(5)
        with pytest.raises(ValidationError):
            redis_repo.create(block)

    def test_duplicate_rejected_and_original_kept(self, redis_repo, redis_client):
        first = make_block()
        redis_repo.create(first)
        second = make_block()
        with pytest.raises(AlreadyBlockedError):
            redis_repo.create(second)
        assert redis_repo.is_blocked("10.0.0.1")[1].id == first.id
        # The rejected block leaves neither an index entry nor a history episode.
        assert redis_client.exists(f"block_id:{second.id}") == 0
        assert redis_client.zscore("block_history:10.0.0.1", second.id) is None
        assert redis_repo.count_since("10.0.0.1", T0) == 1

    def test_failed_index_write_leaves_no_live_block(self, redis_repo, redis_client, monkeypatch):
        pipe = MagicMock()
        pipe.execute.side_effect = RedisConnectionError("Connection reset")
        monkeypatch.setattr(redis_client, "pipeline", lambda *a, **k: pipe)

        with pytest.raises(StoreUnavailableError):
            redis_repo.create(make_block())
        assert redis_client.get("block:10.0.0.1") is None

    def test_live_block_always_removable_by_id(self, redis_repo):
        block = make_block()
        redis_repo.create(block)
        redis_repo.remove(block.id)
        assert redis_repo.is_blocked("10.0.0.1") == (False, None)

    def test_history_recorded(self, redis_repo, redis_client):
        block = make_block()
        redis_repo.create(block)
        assert redis_client.zscore("block_history:10.0.0.1", block.id) == T0.timestamp()

    def test_store_down(self, clock):
        repo = RedisIPBlockRepository(_down_client(), clock=clock)
        with pytest.raises(StoreUnavailableError, match="store IP block"):
            repo.create(make_block())


class TestIsBlocked:
    def test_missing_key(self, redis_repo):
        assert redis_repo.is_blocked("10.0.0.1") == (False, None)

    def test_live_block(self, redis_repo):
        block = make_block()
        redis_repo.create(block)
        blocked, found = redis_repo.is_blocked("10.0.0.1")
        assert blocked is True
        assert found == block
        assert found.expires_at == block.expires_at

    def test_expired_per_clock(self, redis_repo, clock):
        redis_repo.create(make_block(seconds=60))
        clock.advance(61)
        assert redis_repo.is_blocked("10.0.0.1") == (False, None)

    def test_corrupt_entry(self, redis_repo, redis_client):
        redis_client.set("block:10.0.0.1", "{not json")
        with pytest.raises(StoreUnavailableError, match="decode"):
            redis_repo.is_blocked("10.0.0.1")

    def test_store_down(self, clock):
        repo = RedisIPBlockRepository(_down_client(), clock=clock)
        with pytest.raises(StoreUnavailableError):
            repo.is_blocked("10.0.0.1")


class TestRemove:
    def test_remove_by_id(self, redis_repo, redis_client):
        block = make_block()
        redis_repo.create(block)
        redis_repo.remove(block.id)

        assert redis_repo.is_blocked("10.0.0.1") == (False, None)
        assert redis_client.exists(f"block_id:{block.id}") == 0

    def test_unknown_id(self, redis_repo):
        with pytest.raises(BlockNotFoundError) as exc_info:
            redis_repo.remove(str(uuid.uuid4()))
        assert exc_info.value.store == "redis"

    def test_stale_index_cleaned(self, redis_repo, redis_client, clock):
        old = make_block(seconds=60)
        redis_repo.create(old)
        expire_block(redis_client, "10.0.0.1")
        clock.advance(1)
        newer = make_block(now=clock(), seconds=60)
        redis_repo.create(newer)

        with pytest.raises(BlockNotFoundError):
            redis_repo.remove(old.id)
        assert redis_client.exists(f"block_id:{old.id}") == 0
        assert redis_repo.is_blocked("10.0.0.1")[1].id == newer.id


class TestListActive:
    def test_newest_first_with_paging(self, redis_repo, clock):
        created = []
        for i in range(3):
            block = make_block(ip=f"10.0.6.{i}", now=clock())
            redis_repo.create(block)
            created.append(block)
            clock.advance(1)

        assert [b.id for b in redis_repo.list_active(0, 10)] == [b.id for b in reversed(created)]
        assert [b.id for b in redis_repo.list_active(1, 1)] == [created[1].id]

    def test_skips_undecodable_and_expired(self, redis_repo, redis_client, clock):
        redis_repo.create(make_block(ip="10.0.6.1", seconds=30))
        keep = make_block(ip="10.0.6.2", seconds=600)
        redis_repo.create(keep)
        redis_client.set("block:10.0.6.3", "garbage")
        clock.advance(31)

        assert redis_repo.list_active(0, 10) == [keep]

    def test_empty(self, redis_repo):
        assert redis_repo.list_active(0, 10) == []

    def test_store_down(self, clock):
        repo = RedisIPBlockRepository(_down_client(), clock=clock)
        with pytest.raises(StoreUnavailableError):
            repo.list_active(0, 10)


class TestCountSince:
    def test_history_counts_past_episodes(self, redis_repo, redis_client, clock):
        for _ in range(2):
            redis_repo.create(make_block(now=clock(), seconds=60))
            clock.advance(61)
            expire_block(redis_client, "10.0.0.1")

        assert redis_repo.count_since("10.0.0.1", T0) == 2
        assert redis_repo.count_since("10.0.0.1", T0 + timedelta(seconds=1)) == 1

    def test_presence_mode(self, redis_client, clock):
        repo = RedisIPBlockRepository(redis_client, clock=clock, count_block_history=False)
        assert repo.count_since("10.0.0.1", T0) == 0
        repo.create(make_block())
        assert repo.count_since("10.0.0.1", T0) == 1
        expire_block(redis_client, "10.0.0.1")
        assert repo.count_since("10.0.0.1", T0) == 0

    def test_store_down(self, clock):
        repo = RedisIPBlockRepository(_down_client(), clock=clock)
        with pytest.raises(StoreUnavailableError):
            repo.count_since("10.0.0.1", T0)


class TestAttempts:
    def test_record_counts_within_window(self, redis_repo):
        assert [redis_repo.record_attempt("10.0.0.1", 300) for _ in range(3)] == [1, 2, 3]

    def test_same_instant_attempts_all_count(self, redis_repo):
        redis_repo.record_attempt("10.0.0.1", 300)
        redis_repo.record_attempt("10.0.0.1", 300)
        assert redis_repo.get_attempts("10.0.0.1", 300) == 2

    def test_ttl_refreshed_to_window(self, redis_repo, redis_client):
        redis_repo.record_attempt("10.0.0.1", 300)
        assert 0 < redis_client.ttl("attempts:10.0.0.1") <= 300

    def test_old_attempts_pruned(self, redis_repo, clock):
        redis_repo.record_attempt("10.0.0.1", 300)
        clock.advance(301)
        assert redis_repo.get_attempts("10.0.0.1", 300) == 0
        assert redis_repo.record_attempt("10.0.0.1", 300) == 1

    def test_get_attempts_unknown_ip(self, redis_repo):
        assert redis_repo.get_attempts("10.0.0.9", 300) == 0

    def test_store_down(self, clock):
        repo = RedisIPBlockRepository(_down_client(), clock=clock)
        with pytest.raises(StoreUnavailableError, match="record login attempt"):
            repo.record_attempt("10.0.0.1", 300)
