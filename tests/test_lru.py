from apigate.lru import LRUCache


def test_add_then_get_round_trip():
    cache = LRUCache()
    cache.add("a", b"alpha")
    assert cache.get("a") == b"alpha"
    assert len(cache) == 1


def test_missing_key_returns_none():
    cache = LRUCache()
    assert cache.get("nope") is None


def test_update_replaces_value_without_growing():
    cache = LRUCache()
    cache.add("a", b"one")
    cache.add("a", b"two")
    assert cache.get("a") == b"two"
    assert len(cache) == 1


def test_oldest_evicted_when_over_limit():
    evicted = []
    cache = LRUCache(10, lambda k, v: evicted.append((k, v)))
    cache.add("a", b"12345")
    cache.add("b", b"12345")
    cache.add("c", b"1")
    assert evicted == [("a", b"12345")]
    assert cache.get("a") is None
    assert cache.get("b") == b"12345"
    assert len(cache) == 2


def test_get_refreshes_recency():
    cache = LRUCache(10)
    cache.add("a", b"12345")
    cache.add("b", b"12345")
    assert cache.get("a") == b"12345"
    cache.add("c", b"1")
    assert cache.get("b") is None
    assert cache.get("a") == b"12345"


def test_zero_limit_never_evicts():
    cache = LRUCache(0)
    for i in range(50):
        cache.add(i, b"x" * 100)
    assert len(cache) == 50


def test_remove_calls_evict_callback():
    evicted = []
    cache = LRUCache(on_evicted=lambda k, v: evicted.append(k))
    cache.add("a", b"1")
    cache.remove("a")
    cache.remove("missing")
    assert evicted == ["a"]
    assert len(cache) == 0


def test_clear_reports_all_and_empties():
    evicted = []
    cache = LRUCache(on_evicted=lambda k, v: evicted.append(k))
    cache.add("a", b"1")
    cache.add("b", b"2")
    cache.clear()
    assert sorted(evicted) == ["a", "b"]
    assert len(cache) == 0
    cache.add("c", b"3")
    assert cache.get("c") == b"3"


def test_clear_resets_size_accounting():
    cache = LRUCache(10)
    cache.add("a", b"123456789")
    cache.clear()
    cache.add("b", b"123456789")
    assert cache.get("b") == b"123456789"
    assert len(cache) == 1