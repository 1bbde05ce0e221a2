import pytest
import requests
import responses

from emergency_cache.exceptions import CacheStoreError
from emergency_cache.storage import FileCacheStore, HttpCacheStore, create_store, encode_key

STORE_URL = "http://cache-store.local/cache"


def test_encode_key_is_urlsafe_and_padded():
    assert encode_key("???") == "Pz8_"
    assert encode_key("a") == "YQ=="


@responses.activate
def test_http_get_hit():
    responses.add(responses.GET, f"{STORE_URL}/{encode_key('a.com/x')}", body=b"payload", status=200)

    store = HttpCacheStore(STORE_URL + "/")

    assert store.get("a.com/x") == b"payload"


@responses.activate
def test_http_get_non_200_is_a_miss():
    responses.add(responses.GET, f"{STORE_URL}/{encode_key('a.com/x')}", status=404)
    responses.add(responses.GET, f"{STORE_URL}/{encode_key('a.com/y')}", status=500)

    store = HttpCacheStore(STORE_URL)

    assert store.get("a.com/x") is None
    assert store.get("a.com/y") is None


@responses.activate
def test_http_get_transport_error_raises():
    responses.add(
        responses.GET,
        f"{STORE_URL}/{encode_key('a.com/x')}",
        body=requests.ConnectionError("connection refused"),
    )

    store = HttpCacheStore(STORE_URL)

    with pytest.raises(CacheStoreError) as excinfo:
        store.get("a.com/x")
    assert excinfo.value.key == "a.com/x"


@responses.activate
def test_http_put_sends_payload_to_encoded_key():
    url = f"{STORE_URL}/{encode_key('a.com/x?y=1')}"
    responses.add(responses.PUT, url, status=201)

    HttpCacheStore(STORE_URL).put("a.com/x?y=1", b"payload")

    assert len(responses.calls) == 1
    assert responses.calls[0].request.url == url
    assert responses.calls[0].request.body == b"payload"


@responses.activate
def test_http_put_failure_raises():
    responses.add(responses.PUT, f"{STORE_URL}/{encode_key('a.com/x')}", status=503)

    with pytest.raises(CacheStoreError):
        HttpCacheStore(STORE_URL).put("a.com/x", b"payload")


def test_file_store_round_trip(tmp_path):
    store = FileCacheStore(str(tmp_path / "cache"))

    assert store.get("a.com/x") is None
    store.put("a.com/x", b"payload")
    store.put("a.com/x", b"newer")

    assert store.get("a.com/x") == b"newer"
    assert (tmp_path / "cache" / encode_key("a.com/x")).read_bytes() == b"newer"
    assert [path.name for path in (tmp_path / "cache").iterdir()] == [encode_key("a.com/x")]


def test_file_store_keys_are_distinct(tmp_path):
    store = FileCacheStore(str(tmp_path))
    store.put("a.com/x", b"stripped")
    store.put("a.com/x?y=1", b"full")

    assert store.get("a.com/x") == b"stripped"
    assert store.get("a.com/x?y=1") == b"full"


def test_file_store_write_error_raises(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file")

    with pytest.raises(CacheStoreError):
        FileCacheStore(str(blocker)).put("a.com/x", b"payload")


def test_create_store_picks_backend(tmp_path):
    assert isinstance(create_store("https://store.local/cache"), HttpCacheStore)
    assert isinstance(create_store("http://store.local/cache", timeout=1.0), HttpCacheStore)
    assert isinstance(create_store(str(tmp_path)), FileCacheStore)
