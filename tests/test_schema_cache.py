"""Tests for schema hashing and the schema cache."""

import pytest
from pydantic import BaseModel

from structured_client.schema_cache import SchemaCache, canonical_json, schema_hash

from .conftest import Address, Person


def test_canonical_json_ignores_key_order():
    assert canonical_json({"b": 1, "a": {"d": 2, "c": 3}}) == canonical_json({"a": {"c": 3, "d": 2}, "b": 1})


def test_schema_hash_is_order_independent_for_mappings():
    first = {"type": "object", "properties": {"a": {"type": "string"}, "b": {"type": "integer"}}}
    second = {"properties": {"b": {"type": "integer"}, "a": {"type": "string"}}, "type": "object"}
    assert schema_hash(first) == schema_hash(second)


def test_structurally_identical_models_share_a_hash():
    def make():
        class Person(BaseModel):
            """A person mentioned in the text."""

            name: str
            age: int

        return Person

    assert schema_hash(make()) == schema_hash(make())


def test_different_models_have_different_hashes():
    assert schema_hash(Person) != schema_hash(Address)


def test_unsupported_descriptor():
    with pytest.raises(TypeError):
        schema_hash("not a schema")


class TestSchemaCache:
    def test_miss_then_hit(self, clock):
        cache = SchemaCache(clock=clock)
        assert cache.get_or_set(Person) is Person
        assert cache.get_or_set(Person) is Person

        stats = cache.get_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["total_requests"] == 2
        assert stats["hit_rate"] == 0.5

    def test_equivalent_schema_returns_first_instance(self, clock):
        cache = SchemaCache(clock=clock)
        first = {"type": "object", "properties": {"x": {"type": "string"}}}
        second = {"properties": {"x": {"type": "string"}}, "type": "object"}

        assert cache.get_or_set(first) is first
        assert cache.get_or_set(second) is first
        assert len(cache) == 1

    def test_lru_eviction(self, clock):
        cache = SchemaCache(max_size=2, clock=clock)
        a, b, c = ({"title": name} for name in "abc")

        cache.get_or_set(a)
        cache.get_or_set(b)
        cache.get_or_set(a)  # b is now least recently used
        cache.get_or_set(c)

        assert cache.has(a)
        assert not cache.has(b)
        assert cache.has(c)
        assert cache.get_stats()["evictions"] == 1

    def test_has_does_not_touch_stats(self, clock):
        cache = SchemaCache(clock=clock)
        cache.get_or_set(Person)
        cache.has(Person)
        cache.has(Address)
        assert cache.get_stats()["total_requests"] == 1

    def test_get_entry_does_not_touch_counters(self, clock):
        cache = SchemaCache(clock=clock)
        cache.get_or_set(Person)
        cache.get_or_set(Person)

        entry = cache.get_entry(Person)
        assert entry.schema is Person
        assert entry.schema_type == "Person"
        assert entry.hit_count == 2
        assert cache.get_entry(Address) is None
        assert cache.get_entry(Person).hit_count == 2

    def test_remove_and_clear(self, clock):
        cache = SchemaCache(clock=clock)
        cache.preload([Person, Address])
        assert cache.remove(Person)
        assert not cache.remove(Person)
        assert len(cache) == 1

        cache.clear()
        assert len(cache) == 0
        assert cache.get_stats()["misses"] == 0

    def test_update_max_size_shrinks(self, clock):
        cache = SchemaCache(max_size=5, clock=clock)
        schemas = [{"title": str(i)} for i in range(5)]
        cache.preload(schemas)

        cache.update_max_size(2)
        assert len(cache) == 2
        assert cache.has(schemas[3])
        assert cache.has(schemas[4])

    def test_most_used_and_debug_info(self, clock):
        cache = SchemaCache(clock=clock)
        cache.get_or_set(Address)
        for _ in range(3):
            cache.get_or_set(Person)

        most_used = cache.get_most_used(limit=1)
        assert most_used[0]["schema_type"] == "Person"
        assert most_used[0]["hit_count"] == 3

        info = cache.get_debug_info()
        assert len(info["entries"]) == 2
        assert info["stats"]["size"] == 2

    def test_reset_stats_keeps_entries(self, clock):
        cache = SchemaCache(clock=clock)
        cache.get_or_set(Person)
        cache.reset_stats()
        assert len(cache) == 1
        assert cache.get_stats()["total_requests"] == 0

    @pytest.mark.parametrize("max_size", [0, -1])
    def test_capacity_must_be_positive(self, clock, max_size):
        with pytest.raises(ValueError):
            SchemaCache(max_size=max_size, clock=clock)

        cache = SchemaCache(max_size=1, clock=clock)
        with pytest.raises(ValueError):
            cache.update_max_size(max_size)
        assert cache.max_size == 1
