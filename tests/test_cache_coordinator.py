import pytest

from vesitrail.services.cache_coordinator import (
    NETWORK_ONLY,
    CacheCoordinator,
    MessagePort,
    ServiceWorkerClient,
    cache_key,
    cache_name,
    cache_version,
    clear_site_data,
    match_route,
)


class Response:
    def __init__(self, body, status_code=200):
        self.body = body
        self.status_code = status_code


@pytest.mark.parametrize("url, group", [
    ("https://fonts.googleapis.com/css2?family=Inter", "google-fonts"),
    ("https://vesitrail.app/logo.png", "image-assets"),
    ("https://vesitrail.app/_next/static/chunks/main.js", "js-static"),
    ("https://vesitrail.app/_next/static/css/app.css", "css-static"),
    ("https://vesitrail.app/sw-register.js", "js-assets"),
    ("https://vesitrail.app/api/github?type=release", "api-cache"),
    ("https://vesitrail.app/api/auth/session", NETWORK_ONLY),
    ("https://vesitrail.app/dashboard", "pages"),
])
def test_route_matching(url, group):
    assert match_route(url) == group


def test_cross_origin_pages_are_not_handled():
    assert match_route("https://example.com/dashboard", same_origin=False) is None
    assert match_route("https://vesitrail.app/api/booklets", method="POST") is None


def test_cache_key_replaces_existing_version():
    assert cache_key("/app.js?x=1&v=v0.9", "v1.0.0") == "/app.js?x=1&v=v1.0.0"


def test_cache_version():
    assert cache_version("js-static-v1.2.0") == "v1.2.0"
    assert cache_version("workbox-precache") is None


def test_put_and_match_are_version_keyed():
    coordinator = CacheCoordinator(version="v1.0.0")
    response = Response("body")

    assert coordinator.put("https://vesitrail.app/app.js", response)
    assert coordinator.match("https://vesitrail.app/app.js") is response
    assert coordinator.storage.has("js-assets-v1.0.0")

    coordinator.version = "v1.1.0"
    assert coordinator.match("https://vesitrail.app/app.js") is None


def test_error_responses_and_network_only_are_not_cached():
    coordinator = CacheCoordinator()
    assert not coordinator.put("https://vesitrail.app/app.js", Response("", status_code=500))
    assert not coordinator.put("https://vesitrail.app/api/auth/session", Response("{}"))
    assert coordinator.storage.keys() == []


def test_install_and_activate_purge_stale_caches():
    coordinator = CacheCoordinator(version="v1.0.0")
    for name in ("pages-v0.9.0", "js-static-v1.0.0", "workbox-precache"):
        coordinator.storage.open(name)
    client = ServiceWorkerClient()
    coordinator.connect(client)

    assert coordinator.dispatch("install", version="v1.0.0") == ["pages-v0.9.0"]
    assert coordinator.state == "installed"

    coordinator.storage.open("css-static-v0.8.0")
    assert coordinator.dispatch("activate") == ["css-static-v0.8.0"]
    assert coordinator.state == "activated"
    assert sorted(coordinator.storage.keys()) == ["js-static-v1.0.0", "workbox-precache"]
    assert client.messages[-1]["type"] == "SW_ACTIVATED"


def test_skip_waiting_activates_installed_worker():
    coordinator = CacheCoordinator()
    coordinator.handle_install()
    port = MessagePort()

    coordinator.dispatch("message", data={"type": "SKIP_WAITING"}, port=port)

    assert coordinator.state == "activated"
    assert port.messages == [{"type": "SKIP_WAITING_RESPONSE", "success": True, "version": "v1.0.0"}]


def test_version_messages():
    coordinator = CacheCoordinator(version="v1.0.0")
    coordinator.storage.open("pages-v1.0.0")
    port = MessagePort()

    coordinator.handle_message({"type": "GET_VERSION"}, port)
    coordinator.handle_message({"type": "SET_VERSION", "version": "v1.1.0"}, port)

    assert [m["type"] for m in port.messages] == ["VERSION_RESPONSE", "VERSION_SET_RESPONSE"]
    assert port.messages[1]["version"] == "v1.1.0"
    assert coordinator.storage.keys() == []


def test_unknown_message_is_ignored():
    coordinator = CacheCoordinator()
    coordinator.handle_message({"type": "PING"})
    assert coordinator.state == "parsed"


def test_unknown_event():
    with pytest.raises(ValueError):
        CacheCoordinator().dispatch("fetch")


def test_clear_site_data_keeps_push_messaging_storage():
    coordinator = CacheCoordinator()
    coordinator.storage.open("pages-v1.0.0")
    client = ServiceWorkerClient()
    coordinator.connect(client)
    client.session_storage["draft"] = "x"
    client.local_storage.set("app-version-info", "{}")
    client.local_storage.set("firebase:token", "abc")
    client.databases.update({"firebase-messaging-database": {}, "keyval-store": {}})

    clear_site_data(client, coordinator)

    assert client.session_storage == {}
    assert client.local_storage.keys() == ["firebase:token"]
    assert list(client.databases) == ["firebase-messaging-database"]
    assert coordinator.storage.keys() == []
    assert client.messages[-1]["type"] == "CACHE_CLEARED_RESPONSE"


def test_versions_without_prefix_are_normalised():
    coordinator = CacheCoordinator()
    coordinator.handle_install("1.1.0")
    coordinator.put("https://vesitrail.app/app.js", Response("old"))

    assert coordinator.version == "v1.1.0"
    assert coordinator.storage.keys() == ["js-assets-v1.1.0"]

    coordinator.handle_install("1.2.0")
    assert coordinator.storage.keys() == []


def test_unprefixed_cache_names_are_purged():
    coordinator = CacheCoordinator(version="v1.2.0")
    for name in ("js-static-1.1.0", "pages-1.2.0", "js-static-latest"):
        coordinator.storage.open(name)

    assert coordinator.purge_stale() == ["js-static-1.1.0"]
    assert cache_version("pages-1.2.0") == "v1.2.0"
    assert sorted(coordinator.storage.keys()) == ["js-static-latest", "pages-1.2.0"]


def test_set_version_message_without_prefix():
    coordinator = CacheCoordinator(version="v1.0.0")
    coordinator.storage.open("pages-v1.0.0")

    coordinator.handle_message({"type": "SET_VERSION", "version": "1.1.0"})

    assert coordinator.version == "v1.1.0"
    assert coordinator.storage.keys() == []
