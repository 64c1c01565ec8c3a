"""Tests for ShardedMap."""

import threading

import pytest

from memer.cache.sharded_map import ShardedMap


class TestBasicOperations:
    def test_get_missing_returns_default(self):
        m: ShardedMap[str, int] = ShardedMap()
        assert m.get("x") is None
        assert m.get("x", 5) == 5

    def test_insert_returns_previous(self):
        m: ShardedMap[str, int] = ShardedMap()
        assert m.insert("a", 1) is None
        assert m.insert("a", 2) == 1
        assert m.get("a") == 2

    def test_update_receives_none_for_absent_key(self):
        m: ShardedMap[str, int] = ShardedMap()
        seen = []

        def func(old):
            seen.append(old)
            return 1 if old is None else old + 1

        assert m.update("a", func) == 1
        assert m.update("a", func) == 2
        assert seen == [None, 1]

    def test_remove(self):
        m: ShardedMap[str, int] = ShardedMap()
        m.insert("a", 1)
        assert m.remove("a") == 1
        assert m.remove("a") is None
        assert "a" not in m

    def test_len_contains_and_snapshot(self):
        m: ShardedMap[int, str] = ShardedMap(shards=4)
        for i in range(20):
            m.insert(i, str(i))

        assert len(m) == 20
        assert 7 in m
        assert 99 not in m
        assert m.snapshot() == {i: str(i) for i in range(20)}
        assert sorted(m) == list(range(20))

    def test_retain_drops_failing_entries(self):
        m: ShardedMap[int, int] = ShardedMap()
        for i in range(10):
            m.insert(i, i)

        removed = m.retain(lambda _k, v: v % 2 == 0)

        assert removed == 5
        assert sorted(m.keys()) == [0, 2, 4, 6, 8]

    def test_rejects_zero_shards(self):
        with pytest.raises(ValueError):
            ShardedMap(shards=0)


class TestConcurrency:
    def test_concurrent_updates_on_one_key_lose_nothing(self):
        m: ShardedMap[str, int] = ShardedMap()
        threads = [
            threading.Thread(
                target=lambda: [m.update("hits", lambda old: (old or 0) + 1) for _ in range(500)]
            )
            for _ in range(8)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert m.get("hits") == 4000

    def test_concurrent_updates_on_many_keys(self):
        m: ShardedMap[int, int] = ShardedMap()

        def work(offset: int) -> None:
            for i in range(100):
                m.update(i, lambda old: (old or 0) + 1)

        threads = [threading.Thread(target=work, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(m) == 100
        assert set(m.snapshot().values()) == {4}
