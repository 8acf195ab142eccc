import time

import pytest

from kubescrape.storer import InMemoryStore, NotFoundError

TEST_VALUE = 5.0
TEST_NEW_VALUE = 15.0
TEST_KEY = "testKey"


@pytest.fixture
def make_store():
    stores = []

    def factory(ttl, interval):
        store = InMemoryStore(ttl, interval, None)
        stores.append(store)
        return store

    yield factory
    for store in stores:
        store.stop_vacuum()


def test_is_set_overwritten_and_collected(make_store):
    cache = make_store(0.2, 0.6)
    cache.set(TEST_KEY, TEST_VALUE)
    value, _ = cache.get(TEST_KEY, float)
    assert value == TEST_VALUE

    cache.set(TEST_KEY, TEST_NEW_VALUE)
    value, _ = cache.get(TEST_KEY, float)
    assert value == TEST_NEW_VALUE

    time.sleep(0.8)
    with pytest.raises(NotFoundError):
        cache.get(TEST_KEY, float)


def test_after_interval_but_not_ttl_is_kept(make_store):
    cache = make_store(50, 0.1)
    cache.set(TEST_KEY, TEST_VALUE)
    time.sleep(0.35)
    value, _ = cache.get(TEST_KEY, float)
    assert value == TEST_VALUE


def test_set_returns_timestamp_reported_by_get(make_store):
    cache = make_store(50, 1)
    before = int(time.time())
    timestamp = cache.set(TEST_KEY, TEST_VALUE)
    _, stored = cache.get(TEST_KEY, float)
    assert stored == timestamp
    assert before <= timestamp <= int(time.time())


@pytest.mark.parametrize("destination", [None, TEST_KEY])
def test_fails_if_destination_is_not_a_type(make_store, destination):
    cache = make_store(50, 1)
    cache.set(TEST_KEY, TEST_VALUE)
    with pytest.raises(TypeError):
        cache.get(TEST_KEY, destination)


def test_fails_if_type_differs(make_store):
    cache = make_store(50, 1)
    cache.set(TEST_KEY, TEST_VALUE)
    with pytest.raises(TypeError, match="different"):
        cache.get(TEST_KEY, str)


def test_without_a_hit_raises_not_found(make_store):
    cache = make_store(50, 1)
    with pytest.raises(NotFoundError):
        cache.get(TEST_KEY, float)


def test_cleans_itself_periodically(make_store):
    cache = make_store(0.001, 0.05)
    for _ in range(5):
        cache.set(TEST_KEY, TEST_VALUE)
        time.sleep(0.2)
        with pytest.raises(NotFoundError):
            cache.get(TEST_KEY, float)


def test_does_not_delete_old_entries_if_stopped(make_store):
    cache = make_store(0.001, 0.05)
    cache.stop_vacuum()
    for _ in range(5):
        cache.set(TEST_KEY, TEST_VALUE)
        time.sleep(0.2)
        value, _ = cache.get(TEST_KEY, float)
        assert value == TEST_VALUE


def test_delete_and_save_keep_entries(make_store):
    cache = make_store(50, 1)
    cache.set(TEST_KEY, TEST_VALUE)
    cache.delete(TEST_KEY)
    cache.save()
    value, _ = cache.get(TEST_KEY, float)
    assert value == TEST_VALUE