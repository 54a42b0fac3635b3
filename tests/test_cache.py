"""
Storage-backed cache (cache/)

Covers:
- CacheEntry / CacheStats / CacheConfig
- MemoryBackend: LRU eviction, lazy expiry, TTL 0
- FileBackend: persistence, prefix isolation, quota, corrupt documents
- SQLiteBackend: persistence, lazy expiry, clean_expired
- NullBackend
- Serializers and the backend factory
"""

import json

import pytest

from expozr.cache import (
    CacheConfig,
    CacheEntry,
    CacheFault,
    CacheStats,
    FileBackend,
    JsonCacheSerializer,
    MemoryBackend,
    NullBackend,
    PickleCacheSerializer,
    SQLiteBackend,
    create_auto_cache,
    create_cache_backend,
    detect_best_cache_strategy,
    expiry_for,
    get_serializer,
)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def memory_backend(clock):
    return MemoryBackend(max_size=100, clock=clock)


@pytest.fixture
def small_memory_backend(clock):
    return MemoryBackend(max_size=3, clock=clock)


@pytest.fixture
def file_backend(tmp_path, clock):
    return FileBackend(tmp_path, clock=clock)


@pytest.fixture
def sqlite_backend(tmp_path, clock):
    return SQLiteBackend(tmp_path / "cache.db", clock=clock)


# ============================================================================
# Core types
# ============================================================================


class TestCacheEntry:

    def test_no_expiry(self):
        entry = CacheEntry(key="k", value="v")
        assert not entry.is_expired()
        assert entry.ttl_remaining() is None

    def test_expired(self):
        entry = CacheEntry(key="k", value="v", expires_at=1000)
        assert entry.is_expired(now=1000)
        assert not entry.is_expired(now=999)

    def test_ttl_remaining(self):
        entry = CacheEntry(key="k", value="v", expires_at=5000)
        assert entry.ttl_remaining(now=4000) == 1000
        assert entry.ttl_remaining(now=6000) == 0

    def test_record_round_trip(self):
        entry = CacheEntry(key="k", value={"a": 1}, expires_at=42)
        restored = CacheEntry.from_record("k", entry.to_record())
        assert restored.value == {"a": 1}
        assert restored.expires_at == 42

    def test_expiry_for(self):
        assert expiry_for(None) == 0
        assert expiry_for(0) == 0
        assert expiry_for(500, lambda: 1000) == 1500


class TestCacheStats:

    def test_hit_rate_zero_ops(self):
        assert CacheStats().hit_rate == 0.0

    def test_hit_rate_calculation(self):
        assert CacheStats(hits=7, misses=3).hit_rate == pytest.approx(70.0)

    def test_to_dict(self):
        data = CacheStats(hits=5, misses=5, backend="memory").to_dict()
        assert data["hit_rate"] == 50.0
        assert data["backend"] == "memory"


class TestCacheConfig:

    def test_defaults(self):
        config = CacheConfig()
        assert config.strategy == "memory"
        assert config.ttl == 3_600_000

    def test_from_dict_ignores_unknown_keys(self):
        config = CacheConfig.from_dict({"strategy": "file", "ttl": 10, "bogus": True})
        assert config.strategy == "file"
        assert config.ttl == 10


# ============================================================================
# MemoryBackend
# ============================================================================


class TestMemoryBackend:

    @pytest.mark.asyncio
    async def test_set_get(self, memory_backend):
        await memory_backend.set("k", {"v": 1})
        assert await memory_backend.get("k") == {"v": 1}
        assert await memory_backend.has("k")

    @pytest.mark.asyncio
    async def test_missing_key(self, memory_backend):
        assert await memory_backend.get("nope") is None
        assert not await memory_backend.has("nope")

    @pytest.mark.asyncio
    async def test_lazy_expiry_deletes_entry(self, memory_backend, clock):
        await memory_backend.set("k", "v", ttl_ms=100)
        clock.advance(99)
        assert await memory_backend.get("k") == "v"
        clock.advance(1)
        assert await memory_backend.get("k") is None
        assert await memory_backend.size() == 0

    @pytest.mark.asyncio
    async def test_ttl_zero_never_expires(self, memory_backend, clock):
        await memory_backend.set("k", "v", ttl_ms=0)
        clock.advance(10 ** 12)
        assert await memory_backend.get("k") == "v"

    @pytest.mark.asyncio
    async def test_lru_eviction(self, small_memory_backend):
        for key in ("a", "b", "c"):
            await small_memory_backend.set(key, key)
        await small_memory_backend.get("a")
        await small_memory_backend.set("d", "d")

        assert await small_memory_backend.get("b") is None
        assert await small_memory_backend.get("a") == "a"
        stats = await small_memory_backend.stats()
        assert stats.evictions == 1

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, memory_backend):
        await memory_backend.set("a", 1)
        await memory_backend.set("b", 2)
        assert await memory_backend.delete("a") is True
        assert await memory_backend.delete("a") is False
        await memory_backend.clear()
        assert await memory_backend.size() == 0

    @pytest.mark.asyncio
    async def test_clean_expired(self, memory_backend, clock):
        await memory_backend.set("short", 1, ttl_ms=10)
        await memory_backend.set("long", 2, ttl_ms=10_000)
        clock.advance(50)
        assert await memory_backend.clean_expired() == 1
        assert await memory_backend.size() == 1

    @pytest.mark.asyncio
    async def test_stats(self, memory_backend):
        await memory_backend.set("k", "v")
        await memory_backend.get("k")
        await memory_backend.get("missing")
        stats = await memory_backend.stats()
        assert (stats.hits, stats.misses, stats.sets) == (1, 1, 1)
        assert stats.backend == "memory"


# ============================================================================
# FileBackend
# ============================================================================


class TestFileBackend:

    def test_directory_gets_default_filename(self, tmp_path):
        assert FileBackend(tmp_path).path == tmp_path / "expozr-cache.json"

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path, clock):
        await FileBackend(tmp_path, clock=clock).set("k", {"v": 1})
        assert await FileBackend(tmp_path, clock=clock).get("k") == {"v": 1}

    @pytest.mark.asyncio
    async def test_record_layout(self, file_backend, clock):
        await file_backend.set("k", "v", ttl_ms=1000)
        document = json.loads(file_backend.path.read_text())
        assert document["expozr:k"] == {"value": "v", "expires": clock.now + 1000}

    @pytest.mark.asyncio
    async def test_lazy_expiry(self, file_backend, clock):
        await file_backend.set("k", "v", ttl_ms=100)
        clock.advance(100)
        assert await file_backend.get("k") is None
        assert await file_backend.size() == 0

    @pytest.mark.asyncio
    async def test_clear_keeps_foreign_keys(self, file_backend):
        file_backend.path.write_text(json.dumps({"other:x": 1}))
        await file_backend.set("k", "v")
        await file_backend.clear()
        document = json.loads(file_backend.path.read_text())
        assert document == {"other:x": 1}

    @pytest.mark.asyncio
    async def test_quota_exceeded_raises(self, tmp_path):
        backend = FileBackend(tmp_path, max_bytes=64)
        with pytest.raises(CacheFault) as exc_info:
            await backend.set("k", "x" * 200)
        assert exc_info.value.operation == "set"
        assert "quota" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_corrupt_document_raises_on_get(self, file_backend):
        file_backend.path.write_text("{not json")
        with pytest.raises(CacheFault):
            await file_backend.get("k")
        assert await file_backend.has("k") is False

    @pytest.mark.asyncio
    async def test_unserializable_value(self, file_backend):
        with pytest.raises(CacheFault):
            await file_backend.set("k", object())


# ============================================================================
# SQLiteBackend
# ============================================================================


class TestSQLiteBackend:

    @pytest.mark.asyncio
    async def test_set_get(self, sqlite_backend):
        try:
            await sqlite_backend.set("k", {"v": [1, 2]})
            assert await sqlite_backend.get("k") == {"v": [1, 2]}
            assert await sqlite_backend.has("k")
            assert await sqlite_backend.size() == 1
        finally:
            await sqlite_backend.shutdown()

    @pytest.mark.asyncio
    async def test_upsert(self, sqlite_backend):
        try:
            await sqlite_backend.set("k", 1)
            await sqlite_backend.set("k", 2)
            assert await sqlite_backend.get("k") == 2
            assert await sqlite_backend.size() == 1
        finally:
            await sqlite_backend.shutdown()

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path):
        first = SQLiteBackend(tmp_path)
        await first.set("k", "v")
        await first.shutdown()

        second = SQLiteBackend(tmp_path)
        try:
            assert await second.get("k") == "v"
        finally:
            await second.shutdown()

    @pytest.mark.asyncio
    async def test_lazy_expiry_and_clean(self, sqlite_backend, clock):
        try:
            await sqlite_backend.set("a", 1, ttl_ms=10)
            await sqlite_backend.set("b", 2, ttl_ms=10)
            await sqlite_backend.set("c", 3)
            clock.advance(20)
            assert await sqlite_backend.get("a") is None
            assert await sqlite_backend.has("b") is False
            assert await sqlite_backend.clean_expired() == 1
            assert await sqlite_backend.size() == 1
        finally:
            await sqlite_backend.shutdown()

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, sqlite_backend):
        try:
            await sqlite_backend.set("a", 1)
            await sqlite_backend.set("b", 2)
            assert await sqlite_backend.delete("a") is True
            assert await sqlite_backend.delete("a") is False
            await sqlite_backend.clear()
            assert await sqlite_backend.size() == 0
        finally:
            await sqlite_backend.shutdown()

    @pytest.mark.asyncio
    async def test_pickle_serializer(self, tmp_path):
        backend = SQLiteBackend(":memory:", serializer="pickle")
        try:
            await backend.set("k", {1, 2, 3})
            assert await backend.get("k") == {1, 2, 3}
        finally:
            await backend.shutdown()

    @pytest.mark.asyncio
    async def test_unserializable_value(self, sqlite_backend):
        try:
            with pytest.raises(CacheFault):
                await sqlite_backend.set("k", object())
        finally:
            await sqlite_backend.shutdown()


# ============================================================================
# NullBackend
# ============================================================================


class TestNullBackend:

    @pytest.mark.asyncio
    async def test_stores_nothing(self):
        backend = NullBackend()
        await backend.set("k", "v")
        assert await backend.get("k") is None
        assert not await backend.has("k")
        assert await backend.size() == 0
        assert backend.name == "none"


# ============================================================================
# Serializers / factory
# ============================================================================


class TestSerializers:

    def test_json(self):
        s = JsonCacheSerializer()
        assert s.deserialize(s.serialize({"a": [1]})) == {"a": [1]}

    def test_pickle(self):
        s = PickleCacheSerializer()
        assert s.deserialize(s.serialize({1, 2})) == {1, 2}

    def test_get_serializer(self):
        assert isinstance(get_serializer("json"), JsonCacheSerializer)
        with pytest.raises(ValueError):
            get_serializer("msgpack")


class TestFactory:

    @pytest.mark.parametrize("strategy, backend_name", [
        ("memory", "memory"),
        ("file", "file"),
        ("sqlite", "sqlite"),
        ("none", "none"),
        ("null", "none"),
    ])
    def test_create(self, strategy, backend_name, tmp_path):
        backend = create_cache_backend(strategy, CacheConfig(directory=str(tmp_path)))
        assert backend.name == backend_name

    def test_strategy_defaults_to_config(self):
        assert create_cache_backend(config=CacheConfig(strategy="none")).name == "none"

    def test_unknown_strategy(self):
        with pytest.raises(CacheFault):
            create_cache_backend("redis")

    def test_detect_best_strategy(self, tmp_path):
        assert detect_best_cache_strategy(str(tmp_path)) == "sqlite"
        assert detect_best_cache_strategy(None) == "memory"
        assert detect_best_cache_strategy(str(tmp_path / "missing")) == "memory"

    def test_create_auto_cache(self, tmp_path):
        assert create_auto_cache(CacheConfig(directory=str(tmp_path))).name == "sqlite"
        assert create_auto_cache().name == "memory"
