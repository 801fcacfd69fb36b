"""
Tests for settings resolution (api.app_config).
"""

import json

import pytest

from api.app_config import AppConfigManager, AppSettings


@pytest.fixture
def manager(tmp_path, monkeypatch):
    for name in ("TEST_FRACTION", "PORT", "RANDOM_SEED", "MAX_SESSIONS", "LOG_LEVEL"):
        monkeypatch.delenv(f"NNI_{name}", raising=False)
    return AppConfigManager(config_dir=tmp_path / "cfg")


class TestResolution:
    def test_defaults_without_file(self, manager):
        settings = manager.get_settings()
        assert settings == AppSettings()
        assert settings.max_upload_bytes == 50 * 1024 * 1024

    def test_file_overrides_defaults(self, manager):
        manager.save_settings({"test_fraction": 0.3, "port": 9000})
        settings = manager.get_settings()
        assert settings.test_fraction == 0.3
        assert settings.port == 9000

    def test_environment_overrides_file(self, manager, monkeypatch):
        manager.save_settings({"test_fraction": 0.3})
        monkeypatch.setenv("NNI_TEST_FRACTION", "0.4")
        monkeypatch.setenv("NNI_RANDOM_SEED", "7")
        settings = manager.get_settings()
        assert settings.test_fraction == 0.4
        assert settings.random_seed == 7

    def test_unknown_keys_ignored(self, manager):
        manager.save_settings({"colour_scheme": "dark"})
        assert manager.get_settings() == AppSettings()

    def test_corrupt_file_falls_back_to_defaults(self, manager):
        manager.config_dir.mkdir(parents=True)
        manager.settings_path.write_text("{not json", encoding="utf-8")
        assert manager.get_settings() == AppSettings()

    def test_config_dir_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("NNI_CONFIG", str(tmp_path / "elsewhere"))
        assert AppConfigManager().config_dir == tmp_path / "elsewhere"


class TestUpdate:
    def test_update_persists(self, manager):
        settings = manager.update_settings({"max_sessions": 5})
        assert settings.max_sessions == 5

        stored = json.loads(manager.settings_path.read_text(encoding="utf-8"))
        assert stored["max_sessions"] == 5
        assert "last_updated" in stored

    def test_updates_merge(self, manager):
        manager.update_settings({"max_sessions": 5})
        settings = manager.update_settings({"port": 8100})
        assert settings.max_sessions == 5
        assert settings.port == 8100

    def test_invalid_value_not_written(self, manager):
        with pytest.raises(ValueError, match="port"):
            manager.update_settings({"port": "eighty"})
        assert not manager.settings_path.exists()

    def test_seed_can_be_cleared(self, manager):
        manager.update_settings({"random_seed": 3})
        assert manager.update_settings({"random_seed": None}).random_seed is None

    def test_empty_required_value(self):
        with pytest.raises(ValueError, match="cannot be empty"):
            AppSettings.from_dict({"host": ""})
