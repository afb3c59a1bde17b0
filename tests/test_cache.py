"""
TTL cache and platform settings store tests.
"""

from services.settings_store import AI_SELECTION_ENABLED, AI_PRICE_WEIGHT, PACKAGE_SELECTION_MODE, SettingsStore
from utils.cache import ManualClock, TTLCache


class TestTTLCache:
    def test_get_set_and_expiry(self):
        clock = ManualClock(1000.0)
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("a", 1)
        assert cache.get("a") == 1

        clock.advance(9)
        assert cache.get("a") == 1
        clock.advance(1)
        assert cache.get("a") is None

    def test_per_entry_ttl(self):
        clock = ManualClock()
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("short", "x", ttl=1)
        cache.set("long", "y")
        clock.advance(2)
        assert cache.get("short") is None
        assert cache.get("long") == "y"

    def test_evicts_oldest_when_full(self):
        clock = ManualClock()
        cache = TTLCache(ttl_seconds=100, max_size=2, clock=clock)
        cache.set("a", 1)
        clock.advance(1)
        cache.set("b", 2)
        clock.advance(1)
        cache.set("c", 3)
        assert cache.get("a") is None
        assert len(cache) == 2

    def test_delete_clear_cleanup(self):
        clock = ManualClock()
        cache = TTLCache(ttl_seconds=5, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2, ttl=50)
        assert cache.delete("a")
        assert not cache.delete("a")

        cache.set("c", 3)
        clock.advance(10)
        assert cache.stats()["expired_entries"] == 1
        assert cache.cleanup_expired() == 1
        assert len(cache) == 1

        cache.clear()
        assert len(cache) == 0


class TestSettingsStore:
    def test_defaults_and_updates(self, session):
        store = SettingsStore(session)
        assert store.get("missing") is None
        assert store.get("missing", "x") == "x"
        assert store.selection_mode() == "auto"

        store.set(PACKAGE_SELECTION_MODE, " Manual ")
        assert store.selection_mode() == "manual"

    def test_get_int(self, session):
        store = SettingsStore(session)
        store.set("preferred_provider_id", "7")
        store.set("bad", "seven")
        assert store.get_int("preferred_provider_id") == 7
        assert store.get_int("bad") is None
        assert store.get_int("missing") is None

    def test_ensure_defaults_keeps_existing_values(self, session):
        store = SettingsStore(session)
        store.set(PACKAGE_SELECTION_MODE, "manual")

        assert store.ensure_defaults() == 4
        assert store.ensure_defaults() == 0
        assert store.selection_mode() == "manual"
        assert store.get(AI_SELECTION_ENABLED) == "false"
        assert store.get_int(AI_PRICE_WEIGHT) == 50
