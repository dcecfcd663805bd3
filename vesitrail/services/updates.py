"""Client-side update reconciliation.

``UpdateManager`` compares the locally installed version with the latest
published release and decides whether to offer an update. All durable state
(installed version, last check time, dismissed version) lives in a
``KeyValueStore`` so the same logic runs against browser-like memory in tests
and against the settings table on a server-hosted client.

States::

    Idle -> Checking -> UpToDate
                     -> UpdateAvailable -> Dismissed
                                        -> Applied
"""

import json
import logging
import threading
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone

from vesitrail.exceptions import NetworkError, ParseError
from vesitrail.services.versions import compare_versions, strip_tag

logger = logging.getLogger(__name__)


class UpdateState:
    IDLE = "Idle"
    CHECKING = "Checking"
    UP_TO_DATE = "UpToDate"
    UPDATE_AVAILABLE = "UpdateAvailable"
    DISMISSED = "Dismissed"
    APPLIED = "Applied"


@dataclass
class VersionInfo:
    version: str
    tag_name: str
    timestamp: float

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> "VersionInfo":
        data = json.loads(raw)
        return cls(version=data["version"], tag_name=data["tag_name"], timestamp=data.get("timestamp", 0))


@dataclass
class UpdateInfo:
    version: str
    tag_name: str
    changelog: str
    published_at: str


class UpdateManager:
    VERSION_KEY = "app-version-info"
    LAST_CHECKED_KEY = "app-version-last-checked"
    IGNORED_KEY = "app-update-ignored-version"
    FALLBACK_VERSION = "1.0.0"

    def __init__(
        self,
        store,
        release_source,
        cache_coordinator=None,
        reload=None,
        check_interval: timedelta = timedelta(minutes=30),
        clock=None,
    ):
        self.store = store
        self.release_source = release_source
        self.cache_coordinator = cache_coordinator
        self.reload = reload
        self.check_interval = check_interval
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        self.state = UpdateState.IDLE
        self.info = None
        self._checking = threading.Lock()

    # ------------------------------------------------------------------
    # Stored state
    # ------------------------------------------------------------------

    @property
    def loading(self) -> bool:
        return self._checking.locked()

    @property
    def available(self) -> bool:
        return self.state == UpdateState.UPDATE_AVAILABLE

    @property
    def last_checked(self) -> datetime | None:
        raw = self.store.get(self.LAST_CHECKED_KEY)
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            logger.warning("Ignoring unreadable last-checked time %r", raw)
            return None

    @property
    def ignored_version(self) -> str | None:
        return self.store.get(self.IGNORED_KEY)

    def current_version(self) -> VersionInfo | None:
        raw = self.store.get(self.VERSION_KEY)
        if not raw:
            return None
        try:
            return VersionInfo.from_json(raw)
        except (ValueError, KeyError, TypeError):
            logger.error("Failed to parse stored version %r", raw)
            return None

    def _store_version(self, version: str, tag_name: str) -> VersionInfo:
        info = VersionInfo(version=strip_tag(version), tag_name=tag_name, timestamp=time.time())
        self.store.set(self.VERSION_KEY, info.to_json())
        return info

    def initialize(self) -> VersionInfo:
        """Record the installed version on first run.

        A fresh install is on the latest stable release; when that cannot be
        determined the fallback version is recorded instead.
        """
        current = self.current_version()
        if current is not None:
            return current

        try:
            latest = self.release_source.fetch_latest()
        except (NetworkError, ParseError) as exc:
            logger.error("Failed to fetch installed version: %s", exc)
            latest = None

        if latest is not None and latest.is_stable:
            return self._store_version(latest.version, latest.tag_name)
        return self._store_version(self.FALLBACK_VERSION, f"v{self.FALLBACK_VERSION}")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def check_for_updates(self, force: bool = False) -> bool:
        """Ask the release source whether a newer version exists.

        Returns True when an update is available. A check already running
        makes this call a no-op. Transport and payload failures leave the
        previous state (and the last-checked time) untouched; they are only
        raised when the user forced the check.
        """
        if not self._checking.acquire(blocking=False):
            logger.debug("Update check already in progress")
            return False
        try:
            return self._check(force)
        finally:
            self._checking.release()

    def _check(self, force: bool) -> bool:
        previous = (self.state, self.info)
        self.state = UpdateState.CHECKING
        try:
            current = self.initialize()
            latest = self.release_source.fetch_latest()
            has_update = (
                latest is not None
                and latest.is_stable
                and compare_versions(current.version, latest.version) < 0
            )
        except (NetworkError, ParseError) as exc:
            self.state, self.info = previous
            logger.warning("Update check failed: %s", exc)
            if force:
                raise
            return False

        self.store.set(self.LAST_CHECKED_KEY, self.clock().isoformat())

        if not has_update:
            self.state, self.info = UpdateState.UP_TO_DATE, None
            return False

        if not force and self.ignored_version == latest.version:
            logger.info("Update %s was dismissed, not offering it again", latest.version)
            self.state, self.info = UpdateState.DISMISSED, None
            return False

        self.info = UpdateInfo(
            version=latest.version,
            tag_name=latest.tag_name,
            changelog=latest.changelog,
            published_at=latest.published_at,
        )
        self.state = UpdateState.UPDATE_AVAILABLE
        logger.info("Update available: %s -> %s", current.version, latest.version)
        return True

    def background_check(self) -> bool:
        """Throttled automatic check; skipped inside the check interval."""
        last = self.last_checked
        if last is not None and self.clock() - last < self.check_interval:
            return False
        return self.check_for_updates(force=False)

    def dismiss_update(self) -> None:
        if self.info is not None:
            self.store.set(self.IGNORED_KEY, self.info.version)
        self.info = None
        self.state = UpdateState.DISMISSED

    def apply_update(self) -> bool:
        """Install the offered update: new baseline, fresh caches, reload."""
        if self.state != UpdateState.UPDATE_AVAILABLE or self.info is None:
            return False

        info = self.info
        self.store.remove(self.IGNORED_KEY)
        self._store_version(info.version, info.tag_name)

        if self.cache_coordinator is not None:
            try:
                self.cache_coordinator.handle_message({"type": "SET_VERSION", "version": f"v{info.version}"})
            except Exception:
                # The reload below still picks up the new version
                logger.exception("Cache refresh failed while applying %s", info.version)

        self.info = None
        self.state = UpdateState.APPLIED
        logger.info("Applied update %s", info.version)

        if self.reload is not None:
            self.reload()
        return True


def manager_from_config(config, store, cache_coordinator=None, reload=None) -> UpdateManager:
    """UpdateManager reading GitHub directly, throttled per UPDATE_CHECK_INTERVAL_MINUTES."""
    from vesitrail.services.releases import client_from_config

    return UpdateManager(
        store,
        client_from_config(config),
        cache_coordinator=cache_coordinator,
        reload=reload,
        check_interval=timedelta(minutes=config.get("UPDATE_CHECK_INTERVAL_MINUTES", 30)),
    )
