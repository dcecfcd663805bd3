from vesitrail.models import Settings
from vesitrail.services.releases import Release
from vesitrail.services.storage import MemoryStore, SettingsStore
from vesitrail.services.updates import UpdateManager


def test_memory_store():
    store = MemoryStore({"a": "1"})
    store.set("b", "2")
    store.remove("a")
    store.remove("missing")
    assert store.get("a") is None
    assert store.get("b") == "2"


def test_settings_store_is_namespaced(db):
    store = SettingsStore("kiosk")
    store.set("app-version-info", "x")

    assert Settings.get("kiosk:app-version-info") == "x"
    assert store.get("app-version-info") == "x"

    store.remove("app-version-info")
    assert store.get("app-version-info", "gone") == "gone"


def test_update_manager_on_settings_table(db):
    class Source:
        def fetch_latest(self):
            return Release(tag_name="v3.0.0", version="3.0.0")

    manager = UpdateManager(SettingsStore(), Source())
    manager.initialize()

    assert UpdateManager(SettingsStore(), Source()).current_version().version == "3.0.0"
