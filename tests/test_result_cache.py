"""Tests for the in-memory caches."""

import pytest

from llm_evals.caching import MemoryCache, NullCache, ResultCache
from llm_evals.grading import parse_strategy_config
from llm_evals.models import EvalResult, Sample

from .fakes import make_completion, make_sample


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _result(sample) -> EvalResult:
    return EvalResult.for_sample(sample, make_completion("4"), 1.0, True, "matched")


class TestMemoryCache:
    def test_get_set(self) -> None:
        cache = MemoryCache()
        assert cache.get("k") is None
        cache.set("k", 1)
        assert cache.get("k") == 1
        stats = cache.stats()
        assert (stats.hits, stats.misses, stats.size) == (1, 1, 1)
        assert stats.hit_rate == 0.5

    def test_ttl_expiry(self) -> None:
        clock = FakeClock()
        cache = MemoryCache(ttl_seconds=10, clock=clock)
        cache.set("k", "v")
        clock.now = 9.9
        assert cache.get("k") == "v"
        clock.now = 10.0
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_no_ttl(self) -> None:
        clock = FakeClock()
        cache = MemoryCache(ttl_seconds=None, clock=clock)
        cache.set("k", "v")
        clock.now = 1e9
        assert cache.get("k") == "v"

    def test_lru_eviction(self) -> None:
        cache = MemoryCache(max_items=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)
        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.stats().evictions == 1

    def test_delete_where_and_clear(self) -> None:
        cache = MemoryCache()
        for key in ("x:1", "x:2", "y:1"):
            cache.set(key, key)
        assert cache.delete_where(lambda k: k.startswith("x:")) == 2
        assert cache.delete("y:1") is True
        assert cache.delete("y:1") is False
        cache.set("z", 1)
        cache.clear()
        assert len(cache) == 0
        assert cache.stats().total_requests == 0

    def test_invalid_capacity(self) -> None:
        with pytest.raises(ValueError):
            MemoryCache(max_items=0)

    def test_null_cache(self) -> None:
        cache = NullCache()
        cache.set("k", 1)
        assert cache.get("k") is None


class TestResultCache:
    def test_round_trip(self) -> None:
        cache = ResultCache()
        sample = make_sample("4")
        config = parse_strategy_config("match")
        assert cache.get("m", sample, config) is None
        result = _result(sample)
        cache.set("m", sample, config, result)
        assert cache.get("m", sample, config) is result
        assert cache.stats()["hits"] == 1

    def test_key_format(self) -> None:
        key = ResultCache.make_key("m", make_sample("4"), parse_strategy_config("match"))
        prefix, *parts = key.split(":")
        assert prefix == "eval"
        assert [len(p) for p in parts] == [16, 16, 16]

    def test_key_depends_on_model_sample_and_config(self) -> None:
        sample = make_sample("4")
        exact = parse_strategy_config("match")
        includes = parse_strategy_config("match", {"match_type": "includes"})
        keys = {
            ResultCache.make_key("m", sample, exact),
            ResultCache.make_key("other", sample, exact),
            ResultCache.make_key("m", make_sample("5"), exact),
            ResultCache.make_key("m", sample, includes),
        }
        assert len(keys) == 4

    def test_invalidate_model(self) -> None:
        cache = ResultCache()
        config = parse_strategy_config("match")
        a, b = make_sample("4"), make_sample("5")
        cache.set("m1", a, config, _result(a))
        cache.set("m1", b, config, _result(b))
        cache.set("m2", a, config, _result(a))
        assert cache.invalidate_model("m1") == 2
        assert cache.get("m2", a, config) is not None
        assert cache.get("m1", a, config) is None

    def test_key_ignores_sample_metadata(self) -> None:
        config = parse_strategy_config("match")
        plain = make_sample("4")
        annotated = Sample(input=plain.input, ideal=plain.ideal, metadata={"difficulty": "easy"})
        assert ResultCache.make_key("m", plain, config) == ResultCache.make_key("m", annotated, config)

        cache = ResultCache()
        cache.set("m", plain, config, _result(plain))
        assert cache.get("m", annotated, config) is not None

    def test_key_depends_on_grading_model(self) -> None:
        sample = make_sample("4")
        judge_a = parse_strategy_config("model_graded", {"grading_model": "judge-a"})
        judge_b = parse_strategy_config("model_graded", {"grading_model": "judge-b"})
        assert ResultCache.make_key("m", sample, judge_a) != ResultCache.make_key("m", sample, judge_b)
