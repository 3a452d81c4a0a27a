import itertools
import unittest
from dataclasses import dataclass, field

from redis.exceptions import ConnectionError as RedisConnectionError

from devhub.cache import (
    CacheTTL,
    InMemoryCacheStore,
    ProjectCache,
    SkillCache,
    TechCache,
)
from devhub.cache import keys
from devhub.config import Settings


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FailingStore:
    """Every call fails the way a dropped Redis connection does."""

    def get(self, key):
        raise RedisConnectionError("connection refused")

    def set(self, key, value, ttl):
        raise RedisConnectionError("connection refused")

    def delete(self, *keys):
        raise RedisConnectionError("connection refused")

    def keys(self, pattern):
        raise RedisConnectionError("connection refused")


@dataclass
class RecordingStore(InMemoryCacheStore):
    """Remembers every KEYS pattern it is asked for."""

    patterns: list = field(default_factory=list)

    def keys(self, pattern):
        self.patterns.append(pattern)
        return super().keys(pattern)


class CacheKeyTests(unittest.TestCase):
    def test_list_key_is_invariant_to_filter_order(self):
        filters = {"createdBy": "u1", "featured": True, "search": "api", "tech": "t1"}
        expected = keys.list_key("project", 2, 20, filters)
        for order in itertools.permutations(filters):
            permuted = {name: filters[name] for name in order}
            self.assertEqual(keys.list_key("project", 2, 20, permuted), expected)

    def test_key_shapes(self):
        self.assertEqual(keys.item_key("project", "abc"), "project:abc")
        self.assertEqual(
            keys.list_key("project", 1, 10, {"tech": "t1", "featured": False}),
            "project:list:page:1:pageSize:10:featured:false:tech:t1",
        )
        self.assertEqual(keys.list_key("skill", 1, 10), "skill:list:page:1:pageSize:10:")
        self.assertEqual(keys.count_key("tech", {"search": "go"}), "tech:count:search:go")
        self.assertEqual(keys.name_key("tech", "  Go "), "tech:name:go")
        self.assertEqual(
            keys.index_key("project", "tech", "t1", 1, 10),
            "project:tech:t1:page:1:pageSize:10",
        )

    def test_filter_string_drops_none_values(self):
        self.assertEqual(keys.filter_string({"b": None, "a": 1}), "a:1")
        self.assertEqual(keys.filter_string(None), "")


class InMemoryCacheStoreTests(unittest.TestCase):
    def test_entries_expire_after_ttl(self):
        clock = FakeClock()
        store = InMemoryCacheStore(clock=clock)
        store.set("k", "v", 10)
        self.assertEqual(store.get("k"), "v")
        clock.now += 10
        self.assertIsNone(store.get("k"))
        self.assertEqual(store.keys("*"), [])

    def test_keys_matches_glob_patterns(self):
        store = InMemoryCacheStore()
        store.set("project:list:page:1:pageSize:10:", "[]", 60)
        store.set("project:abc", "{}", 60)
        store.set("tech:abc", "{}", 60)
        self.assertEqual(
            sorted(store.keys("project:*")),
            ["project:abc", "project:list:page:1:pageSize:10:"],
        )
        self.assertEqual(store.delete("project:abc", "missing"), 1)


class EntityCacheTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryCacheStore()
        self.projects = ProjectCache(self.store)
        self.techs = TechCache(self.store)

    def test_item_round_trip_until_invalidated(self):
        project = {"id": "p1", "title": "Lumi", "techs": [{"id": "t1", "name": "Go"}]}
        self.projects.set_item("p1", project)
        self.assertEqual(self.projects.get_item("p1"), project)
        self.projects.invalidate_entity("p1")
        self.assertIsNone(self.projects.get_item("p1"))

    def test_ttl_classes_are_applied(self):
        clock = FakeClock()
        store = InMemoryCacheStore(clock=clock)
        cache = SkillCache(store, CacheTTL(item=100, listing=50, count=100, name_lookup=5))
        cache.set_item("s1", {"id": "s1"})
        cache.set_list(1, 10, None, {"skills": []})
        cache.set_name_lookup("Python", "s1")
        clock.now += 6
        self.assertIsNone(cache.get_name_lookup("python"))
        self.assertIsNotNone(cache.get_list(1, 10))
        clock.now += 50
        self.assertIsNone(cache.get_list(1, 10))
        self.assertEqual(cache.get_item("s1"), {"id": "s1"})

    def test_invalidate_all_sweeps_lists_counts_and_indices(self):
        self.projects.set_item("p1", {"id": "p1"})
        self.projects.set_list(1, 10, {"featured": True}, {"projects": []})
        self.projects.set_list(2, 10, None, {"projects": []})
        self.projects.set_count(3, {"featured": True})
        self.projects.set_user_projects("u1", 1, 10, {"projects": []})
        self.projects.set_tech_projects("t1", 1, 10, {"projects": []})
        self.techs.set_item("t1", {"id": "t1"})

        self.projects.invalidate_all()

        self.assertIsNone(self.projects.get_list(1, 10, {"featured": True}))
        self.assertIsNone(self.projects.get_list(2, 10))
        self.assertIsNone(self.projects.get_count({"featured": True}))
        self.assertIsNone(self.projects.get_user_projects("u1", 1, 10))
        self.assertIsNone(self.projects.get_tech_projects("t1", 1, 10))
        self.assertEqual(self.techs.get_item("t1"), {"id": "t1"})

    def test_invalidate_all_is_one_sweep(self):
        store = RecordingStore()
        cache = ProjectCache(store)
        cache.set_user_projects("u1", 1, 10, {"projects": []})
        cache.set_tech_projects("t1", 1, 10, {"projects": []})
        self.assertEqual(cache.invalidate_all(), 2)
        self.assertEqual(store.patterns, ["project:*"])

    def test_count_is_stored_as_decimal_text(self):
        self.projects.set_count(42, {"search": "api"})
        self.assertEqual(self.store.get("project:count:search:api"), "42")
        self.assertEqual(self.projects.get_count({"search": "api"}), 42)

    def test_name_lookup_is_case_folded(self):
        self.techs.set_name_lookup("Go", "t1")
        self.assertEqual(self.store.get("tech:name:go"), "t1")
        self.assertEqual(self.techs.get_name_lookup(" GO "), "t1")
        self.techs.invalidate_name("go")
        self.assertIsNone(self.techs.get_name_lookup("Go"))

    def test_hits_and_misses_are_recorded(self):
        self.projects.get_item("p1")
        self.projects.set_item("p1", {"id": "p1"})
        self.projects.get_item("p1")
        self.assertEqual(self.projects.stats.misses, 1)
        self.assertEqual(self.projects.stats.hits, 1)

    def test_undecodable_payload_is_a_miss(self):
        self.store.set("project:p1", "{not json", 60)
        self.assertIsNone(self.projects.get_item("p1"))
        self.assertEqual(self.projects.stats.errors, 1)

    def test_store_failures_degrade_to_misses(self):
        cache = ProjectCache(FailingStore())
        self.assertIsNone(cache.get_item("p1"))
        self.assertIsNone(cache.get_count())
        cache.set_item("p1", {"id": "p1"})
        cache.set_count(1)
        cache.invalidate_entity("p1")
        self.assertEqual(cache.invalidate_all(), 0)
        self.assertGreaterEqual(cache.stats.errors, 5)

    def test_ttl_from_settings_falls_back_on_bad_values(self):
        settings = Settings(cache_ttl_item="0", cache_ttl_list="abc", cache_ttl_name_lookup=30)
        ttl = CacheTTL.from_settings(settings)
        self.assertEqual(ttl.item, 3600)
        self.assertEqual(ttl.listing, 1800)
        self.assertEqual(ttl.count, 3600)
        self.assertEqual(ttl.name_lookup, 30)


if __name__ == "__main__":
    unittest.main()
