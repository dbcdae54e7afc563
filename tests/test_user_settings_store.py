import json
from pathlib import Path

from checkin_scanner.config.user_settings_store import DEFAULT_SETTINGS, UserSettingsStore


def test_defaults_when_file_missing(tmp_path: Path) -> None:
    store = UserSettingsStore(settings_dir=tmp_path / "settings")

    assert store.data == DEFAULT_SETTINGS
    assert store.get("api_base_url", "http://localhost:8080") == "http://localhost:8080"
    assert not store.settings_file.exists()


def test_update_persists_known_keys_only(tmp_path: Path) -> None:
    store = UserSettingsStore(settings_dir=tmp_path)

    store.update(preferred_camera_id="2", event_name="Spring Gala", theme="light")

    saved = json.loads(store.settings_file.read_text(encoding="utf-8"))
    assert saved["preferred_camera_id"] == "2"
    assert saved["event_name"] == "Spring Gala"
    assert "theme" not in saved

    reloaded = UserSettingsStore(settings_dir=tmp_path)
    assert reloaded.get("preferred_camera_id") == "2"


def test_corrupt_file_falls_back_to_defaults(tmp_path: Path) -> None:
    (tmp_path / "user_settings.json").write_text("{not json", encoding="utf-8")

    store = UserSettingsStore(settings_dir=tmp_path)

    assert store.data == DEFAULT_SETTINGS
