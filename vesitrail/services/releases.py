"""Where published releases come from.

``GitHubReleaseClient`` talks to the GitHub REST API directly; the
``/api/github`` endpoint serves its results through a short-lived cache, and
``ReleaseEndpointClient`` is what an installed client uses to read that
endpoint.
"""

import logging
import threading
import time
from dataclasses import dataclass

import httpx

from vesitrail.exceptions import NetworkError, ParseError
from vesitrail.services.versions import strip_tag

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"


@dataclass(frozen=True)
class Release:
    tag_name: str
    version: str
    draft: bool = False
    prerelease: bool = False
    published_at: str = None
    changelog: str = "No changelog available."

    @property
    def is_stable(self) -> bool:
        return not (self.draft or self.prerelease)

    @classmethod
    def from_github(cls, data) -> "Release":
        """Build a Release from a GitHub ``releases/latest`` payload."""
        if not isinstance(data, dict) or not isinstance(data.get("tag_name"), str) or not data["tag_name"]:
            raise ParseError("Release payload has no tag_name")
        return cls(
            tag_name=data["tag_name"],
            version=strip_tag(data["tag_name"]),
            draft=bool(data.get("draft", False)),
            prerelease=bool(data.get("prerelease", False)),
            published_at=data.get("published_at"),
            changelog=data.get("body") or "No changelog available.",
        )

    @classmethod
    def from_endpoint(cls, data) -> "Release":
        """Build a Release from this application's ``/api/github?type=release``."""
        if not isinstance(data, dict) or not isinstance(data.get("tagName"), str) or not data["tagName"]:
            raise ParseError("Release payload has no tagName")
        return cls(
            tag_name=data["tagName"],
            version=data.get("version") or strip_tag(data["tagName"]),
            draft=bool(data.get("draft", False)),
            prerelease=bool(data.get("prerelease", False)),
            published_at=data.get("publishedAt"),
            changelog=data.get("changelog") or "No changelog available.",
        )

    def to_endpoint_dict(self) -> dict:
        return {
            "tagName": self.tag_name,
            "version": self.version,
            "draft": self.draft,
            "prerelease": self.prerelease,
            "publishedAt": self.published_at,
            "changelog": self.changelog,
        }


def _get_json(client: httpx.Client, url: str, headers: dict = None):
    """GET *url* and decode JSON, mapping failures to NetworkError/ParseError."""
    try:
        response = client.get(url, headers=headers)
    except httpx.TimeoutException as exc:
        raise NetworkError(f"Timed out fetching {url}") from exc
    except httpx.HTTPError as exc:
        raise NetworkError(f"Failed to fetch {url}: {exc}") from exc

    if response.status_code == 404:
        return None
    if response.status_code >= 400:
        raise NetworkError(f"{url} returned HTTP {response.status_code}", status=response.status_code)

    try:
        return response.json()
    except ValueError as exc:
        raise ParseError(f"{url} did not return JSON") from exc


class GitHubReleaseClient:
    """Reads release and repository data from the GitHub REST API."""

    def __init__(self, owner: str, repo: str, token: str = None, timeout: float = 5.0, transport=None):
        self.owner = owner
        self.repo = repo
        self.token = token
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> dict:
        headers = {"Accept": "application/vnd.github.v3+json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _url(self, endpoint: str = "") -> str:
        return f"{GITHUB_API_URL}/repos/{self.owner}/{self.repo}{endpoint}"

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self.transport)

    def fetch_latest(self) -> Release | None:
        """Latest published release (may be a draft/prerelease), None if none exists."""
        with self._client() as client:
            data = _get_json(client, self._url("/releases/latest"), self._headers())
        if data is None:
            return None
        return Release.from_github(data)

    def fetch_stars(self) -> int:
        with self._client() as client:
            data = _get_json(client, self._url(), self._headers())
        if not isinstance(data, dict) or "stargazers_count" not in data:
            raise ParseError("Repository payload has no stargazers_count")
        return int(data["stargazers_count"])


class ReleaseEndpointClient:
    """Reads the latest stable release from a VESITRail server."""

    def __init__(self, base_url: str, timeout: float = 5.0, transport=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def fetch_latest(self) -> Release | None:
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            data = _get_json(client, f"{self.base_url}/api/github?type=release")
        if data is None:
            return None
        return Release.from_endpoint(data)


class _TTLCache:
    """One cached value per key, recomputed after *ttl* seconds.

    Each key has its own lock, so a slow fetch only holds up callers that
    want the same value.
    """

    def __init__(self):
        self._values = {}
        self._key_locks = {}
        self._lock = threading.Lock()

    def _key_lock(self, key) -> threading.Lock:
        with self._lock:
            return self._key_locks.setdefault(key, threading.Lock())

    def _fresh(self, key, ttl: float):
        entry = self._values.get(key)
        if entry is not None and time.monotonic() - entry[0] < ttl:
            return entry
        return None

    def get_or_compute(self, key, ttl: float, compute):
        with self._key_lock(key):
            entry = self._fresh(key, ttl)
            if entry is not None:
                return entry[1]
            value = compute()
            self._values[key] = (time.monotonic(), value)
            return value

    def clear(self):
        with self._lock:
            self._values.clear()


_cache = _TTLCache()


def client_from_config(config) -> GitHubReleaseClient:
    return GitHubReleaseClient(
        owner=config.get("GITHUB_REPO_OWNER"),
        repo=config.get("GITHUB_REPO_NAME"),
        token=config.get("GITHUB_TOKEN"),
        timeout=config.get("RELEASE_TIMEOUT_SECONDS", 5.0),
        transport=config.get("GITHUB_TRANSPORT"),
    )


def get_cached_release(config) -> Release | None:
    """Latest stable release, cached for RELEASE_CACHE_SECONDS.

    Drafts and prereleases are reported as "no stable release" (None).
    """
    def compute():
        release = client_from_config(config).fetch_latest()
        if release is None or not release.is_stable:
            logger.info("No stable release published")
            return None
        return release

    return _cache.get_or_compute("release", config.get("RELEASE_CACHE_SECONDS", 1800), compute)


def get_cached_stars(config) -> int:
    return _cache.get_or_compute(
        "stars",
        config.get("STARS_CACHE_SECONDS", 3600),
        lambda: client_from_config(config).fetch_stars(),
    )


def clear_cache() -> None:
    _cache.clear()
