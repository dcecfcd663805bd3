"""Version-keyed response caches for the installable web client.

Every cached resource group gets one cache per application version
(``js-static-v1.3.0``), and every entry key carries the version as a query
parameter. Moving to a new version therefore never reuses an old entry, and
cleaning up is just deleting the caches whose version suffix is not the
current one. ``CacheCoordinator`` runs that lifecycle from named events
(install, activate, message) the way a service worker does.
"""

import logging
import re
import time
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from vesitrail.services.versions import strip_tag

logger = logging.getLogger(__name__)

DEFAULT_VERSION = "v1.0.0"
NETWORK_ONLY = "network-only"

CACHE_GROUPS = (
    "google-fonts",
    "gstatic-fonts",
    "font-assets",
    "image-assets",
    "next-images",
    "audio-assets",
    "video-assets",
    "js-static",
    "css-static",
    "js-assets",
    "css-assets",
    "api-cache",
    "pages",
)

# Storage namespaces owned by the push-messaging integration survive a reset
RESERVED_STORAGE_PREFIXES = ("firebase",)

_VERSION_SUFFIX_RE = re.compile(r"^[vV]?\d+(?:\.\d+)*$")

# First match wins; callables get (url parts, method, same_origin)
_ROUTES = [
    (re.compile(r"^https://fonts\.googleapis\.com/.*", re.I), "google-fonts"),
    (re.compile(r"^https://fonts\.gstatic\.com/.*", re.I), "gstatic-fonts"),
    (re.compile(r"\.(?:eot|otf|ttc|ttf|woff|woff2|font\.css)$", re.I), "font-assets"),
    (re.compile(r"\.(?:jpg|jpeg|gif|png|svg|ico|webp|avif)$", re.I), "image-assets"),
    (re.compile(r"/_next/image\?url=.*", re.I), "next-images"),
    (re.compile(r"\.(?:mp3|wav|ogg|m4a|aac)$", re.I), "audio-assets"),
    (re.compile(r"\.(?:mp4|webm|ogg|avi|mov)$", re.I), "video-assets"),
    (re.compile(r"/_next/static/.+\.js$", re.I), "js-static"),
    (re.compile(r"/_next/static/.+\.css$", re.I), "css-static"),
    (re.compile(r"\.(?:js|mjs)$", re.I), "js-assets"),
    (re.compile(r"\.(?:css)$", re.I), "css-assets"),
    (
        lambda parts, method, same_origin: method == "GET"
        and same_origin
        and parts.path.startswith("/api/auth/"),
        NETWORK_ONLY,
    ),
    (
        lambda parts, method, same_origin: method == "GET"
        and same_origin
        and parts.path.startswith("/api/"),
        "api-cache",
    ),
    (
        lambda parts, method, same_origin: method == "GET"
        and same_origin
        and "_next/data" not in parts.path
        and not parts.path.startswith("/_next/webpack-hmr"),
        "pages",
    ),
]


def cache_name(group: str, version: str) -> str:
    return f"{group}-{version}"


def cache_key(url: str, version: str) -> str:
    """*url* with ``v=<version>`` added to its query string."""
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "v"]
    query.append(("v", version))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def match_route(url: str, method: str = "GET", same_origin: bool = True) -> str | None:
    """Cache group a request belongs to, NETWORK_ONLY, or None (not handled)."""
    parts = urlsplit(url)
    for matcher, group in _ROUTES:
        if callable(matcher):
            if matcher(parts, method.upper(), same_origin):
                return group
        elif matcher.search(url):
            return group
    return None


def normalize_version(version) -> str:
    """Cache generation label for *version*: always ``v`` + dotted version."""
    return f"v{strip_tag(str(version))}" if version else DEFAULT_VERSION


def cache_version(name: str) -> str | None:
    """Normalised version suffix of a version-keyed cache name.

    Suffixes with or without the ``v`` are both recognised; None for caches
    that are not version-keyed.
    """
    for group in CACHE_GROUPS:
        prefix = f"{group}-"
        if name.startswith(prefix) and _VERSION_SUFFIX_RE.match(name[len(prefix):]):
            return normalize_version(name[len(prefix):])
    return None


class CacheStorage:
    """In-memory stand-in for the browser Cache Storage API."""

    def __init__(self):
        self._caches = {}

    def keys(self) -> list[str]:
        return list(self._caches)

    def open(self, name: str) -> dict:
        return self._caches.setdefault(name, {})

    def has(self, name: str) -> bool:
        return name in self._caches

    def delete(self, name: str) -> bool:
        return self._caches.pop(name, None) is not None


class MessagePort:
    """Reply channel handed over with a message."""

    def __init__(self):
        self.messages = []

    def post_message(self, message: dict) -> None:
        self.messages.append(message)


class ServiceWorkerClient:
    """A page controlled by the worker, with its own client-side storage."""

    def __init__(self, url: str = "/", local_storage=None):
        from vesitrail.services.storage import MemoryStore

        self.url = url
        self.messages = []
        self.session_storage = {}
        self.local_storage = local_storage if local_storage is not None else MemoryStore()
        self.databases = {}

    def post_message(self, message: dict) -> None:
        self.messages.append(message)


class CacheCoordinator:
    """Install/activate/message handling for version-keyed caches."""

    def __init__(self, storage: CacheStorage = None, version: str = DEFAULT_VERSION, clock=time.time):
        self.storage = storage or CacheStorage()
        self.version = normalize_version(version)
        self.clock = clock
        self.state = "parsed"
        self.clients = []
        self._handlers = {
            "SKIP_WAITING": self._on_skip_waiting,
            "CACHE_CLEARED": self._on_cache_cleared,
            "GET_VERSION": self._on_get_version,
            "SET_VERSION": self._on_set_version,
        }

    def connect(self, client: ServiceWorkerClient) -> None:
        if client not in self.clients:
            self.clients.append(client)

    def broadcast(self, message: dict) -> None:
        for client in list(self.clients):
            client.post_message(message)

    # ------------------------------------------------------------------
    # Cache access
    # ------------------------------------------------------------------

    def put(self, url: str, response, method: str = "GET", same_origin: bool = True) -> bool:
        """Cache *response* under the current version. Returns False if not cacheable."""
        group = match_route(url, method, same_origin)
        if group is None or group == NETWORK_ONLY:
            return False
        status = getattr(response, "status_code", 200)
        if status != 200:
            return False
        self.storage.open(cache_name(group, self.version))[cache_key(url, self.version)] = response
        return True

    def match(self, url: str, method: str = "GET", same_origin: bool = True):
        group = match_route(url, method, same_origin)
        if group is None or group == NETWORK_ONLY:
            return None
        name = cache_name(group, self.version)
        if not self.storage.has(name):
            return None
        return self.storage.open(name).get(cache_key(url, self.version))

    def purge_stale(self) -> list[str]:
        """Delete every version-keyed cache that is not for the current version."""
        stale = [
            name for name in self.storage.keys()
            if cache_version(name) not in (None, self.version)
        ]
        for name in stale:
            self.storage.delete(name)
        if stale:
            logger.info("Purged %d stale caches (current %s)", len(stale), self.version)
        return stale

    # ------------------------------------------------------------------
    # Lifecycle events
    # ------------------------------------------------------------------

    def dispatch(self, event: str, **payload):
        """Route a named lifecycle event to its handler."""
        if event == "install":
            return self.handle_install(payload.get("version"))
        if event == "activate":
            return self.handle_activate()
        if event == "message":
            return self.handle_message(payload.get("data") or {}, payload.get("port"))
        raise ValueError(f"Unknown event: {event}")

    def handle_install(self, version: str = None) -> list[str]:
        if version:
            self.version = normalize_version(version)
        purged = self.purge_stale()
        self.state = "installed"
        return purged

    def handle_activate(self) -> list[str]:
        # A newer worker may have activated before install-time cleanup ran
        purged = self.purge_stale()
        self.state = "activated"
        self.broadcast({"type": "SW_ACTIVATED", "version": self.version, "timestamp": self.clock()})
        return purged

    def handle_message(self, message: dict, port: MessagePort = None) -> None:
        handler = self._handlers.get(message.get("type"))
        if handler is None:
            logger.debug("Ignoring message %r", message.get("type"))
            return
        handler(message, port)

    def _on_skip_waiting(self, message, port):
        if self.state == "installed":
            self.handle_activate()
        if port is not None:
            port.post_message({"type": "SKIP_WAITING_RESPONSE", "success": True, "version": self.version})

    def _on_cache_cleared(self, message, port):
        for name in self.storage.keys():
            self.storage.delete(name)
        self.broadcast({"type": "CACHE_CLEARED_RESPONSE", "version": self.version, "timestamp": self.clock()})

    def _on_get_version(self, message, port):
        if port is not None:
            port.post_message({"type": "VERSION_RESPONSE", "version": self.version})

    def _on_set_version(self, message, port):
        self.version = normalize_version(message.get("version"))
        self.purge_stale()
        if port is not None:
            port.post_message({"type": "VERSION_SET_RESPONSE", "success": True, "version": self.version})


def clear_site_data(client: ServiceWorkerClient, coordinator: CacheCoordinator) -> None:
    """The "clear cache" action from the settings screen.

    Drops session storage, local storage and databases (except the push
    messaging namespaces), then tells the worker to empty every cache.
    """
    client.session_storage.clear()

    for key in client.local_storage.keys():
        if not key.startswith(RESERVED_STORAGE_PREFIXES):
            client.local_storage.remove(key)

    for name in list(client.databases):
        if not name.startswith(RESERVED_STORAGE_PREFIXES):
            del client.databases[name]

    coordinator.handle_message({"type": "CACHE_CLEARED"})
