import asyncio

from domain.models import Coordinate, ResolutionResult, ResolvedLocation, SearchText
from services.result_cache import MemoryResultStore, ResultCache, fingerprint
from services.result_cache_sqlite import SqliteResultStore


def _result() -> ResolutionResult:
    return ResolutionResult(
        locations=(
            ResolvedLocation(48.8584, 2.2945, "osm", name="Eiffel Tower", address="Paris"),
            ResolvedLocation(48.86, 2.29, "osm"),
        )
    )


def _text(text: str) -> SearchText:
    return SearchText(text=text, key=text.lower(), radius=5000.0)


def test_fingerprint_is_deterministic_and_case_insensitive():
    a = fingerprint(_text("Eiffel Tower"), "search", 5000, 3)
    b = fingerprint(_text("eiffel tower"), "search", 5000.0, 3)
    assert a == b
    assert len(a) == 64


def test_fingerprint_distinguishes_inputs():
    base = fingerprint(_text("paris"), "search", 5000, 3)
    assert fingerprint(_text("paris"), "coordinates", 5000, 3) != base
    assert fingerprint(_text("paris"), "search", 1000, 3) != base
    assert fingerprint(_text("paris"), "search", 5000, 5) != base
    assert fingerprint(Coordinate(1.0, 2.0), "search", 5000, 3) != fingerprint(
        Coordinate(2.0, 1.0), "search", 5000, 3
    )


def test_fingerprint_includes_bias_point_and_locale():
    base = fingerprint(_text("main street"), "osm", 5000, 3, near=(40.71, -74.0), locale="en")
    assert fingerprint(_text("main street"), "osm", 5000, 3, near=(55.75, 37.62), locale="en") != base
    assert fingerprint(_text("main street"), "osm", 5000, 3, near=None, locale="en") != base
    assert fingerprint(_text("main street"), "osm", 5000, 3, near=(40.71, -74.0), locale="ru") != base
    assert fingerprint(_text("main street"), "yandex", 5000, 3, near=(40.71, -74.0), locale="en") != base
    # nearly the same point shares an entry
    assert fingerprint(_text("main street"), "osm", 5000, 3, near=(40.7101, -74.0002), locale="EN") == base


def test_memory_round_trip_then_expiry(clock):
    cache = ResultCache(MemoryResultStore(ttl=300, clock=clock), ttl=300)
    key = cache.fingerprint(_text("Eiffel Tower"), "search", 5000, 3)

    async def scenario():
        await cache.put(key, _result())
        assert await cache.get(key) == _result()
        clock.now = 301.0
        assert await cache.get(key) is None

    asyncio.run(scenario())


def test_sqlite_round_trip_then_expiry(tmp_path, clock):
    clock.now = 1_000_000.0
    store = SqliteResultStore(str(tmp_path / "results.sqlite"), clock=clock)
    cache = ResultCache(store, ttl=60)

    async def scenario():
        await cache.put("fp", _result())
        assert await cache.get("fp") == _result()
        clock.now += 61
        assert await cache.get("fp") is None

    asyncio.run(scenario())
    store.close()


def test_sqlite_persists_across_instances(tmp_path):
    path = str(tmp_path / "results.sqlite")
    first = SqliteResultStore(path)
    first.put("fp", _result(), ttl=600)
    first.close()

    second = SqliteResultStore(path)
    assert second.get("fp") == _result()
    second.close()


def test_sqlite_sweep_removes_expired_rows(tmp_path, clock):
    clock.now = 100.0
    store = SqliteResultStore(str(tmp_path / "results.sqlite"), clock=clock)
    store.put("old", _result(), ttl=10)
    store.put("new", _result(), ttl=1000)
    clock.now = 200.0

    assert store.sweep() == 1
    assert store.get("new") == _result()
    store.close()


class BrokenStore:
    blocking = False

    def get(self, key):
        raise OSError("store down")

    def put(self, key, result, ttl):
        raise OSError("store down")

    def sweep(self):
        return 0


def test_failing_store_is_a_miss_and_skipped_write():
    cache = ResultCache(BrokenStore())

    async def scenario():
        await cache.put("fp", _result())
        assert await cache.get("fp") is None

    asyncio.run(scenario())
