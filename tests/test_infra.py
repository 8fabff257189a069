import threading

from etymology_viz.infra import Config, ResolutionCache, ServiceHealth


def test_service_health_state_transitions():
    health = ServiceHealth("translator")
    status = health.get_status()
    assert status["available"] is False
    assert health.should_retry

    health.mark_available("connected")
    status = health.get_status()
    assert status["available"] is True
    assert status["error"] == ""

    health.mark_unavailable("timeout")
    status = health.get_status()
    assert status["available"] is False
    assert status["error"] == "timeout"
    assert status["error_count"] >= 1
    assert not health.should_retry


class TestResolutionCache:

    def test_get_put_and_stats(self):
        cache = ResolutionCache("words")
        assert cache.get(("रंग", "hi")) is None
        assert cache.put(("रंग", "hi"), "value") == "value"
        assert cache.get(("रंग", "hi")) == "value"
        assert ("रंग", "hi") in cache
        assert len(cache) == 1
        assert cache.get_status() == {"name": "words", "entries": 1, "hits": 1, "misses": 1}

    def test_injected_store_and_clear(self):
        store = {"preloaded": 1}
        cache = ResolutionCache("words", store=store)
        assert cache.get("preloaded") == 1
        cache.put("new", 2)
        assert store == {"preloaded": 1, "new": 2}
        cache.clear()
        assert store == {}

    def test_concurrent_puts_lose_nothing(self):
        cache = ResolutionCache("words")

        def writer(offset):
            for i in range(200):
                cache.put(offset * 1000 + i, i)

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(cache) == 1000


def test_config_defaults():
    assert Config.MAX_CANDIDATES >= 1
    assert Config.TRANSLATOR_ENDPOINT.startswith("http")
    assert Config.get_translator_credentials()["region"] == Config.TRANSLATOR_REGION
