"""Tests for store configuration."""

import pytest

from mindvault.config import (
    CONFIG_FILENAME,
    DEFAULT_DEBOUNCE_SECONDS,
    StoreConfig,
    get_config_dir,
    load_config,
    load_or_create_config,
    save_config,
)


class TestConfig:

    def test_created_with_defaults(self, tmp_path):
        config = load_or_create_config(tmp_path)
        assert (tmp_path / CONFIG_FILENAME).exists()
        assert config.debounce_seconds == DEFAULT_DEBOUNCE_SECONDS
        assert config.on_switch == "discard"
        assert config.max_attachment_bytes == 20 * 1024 * 1024
        assert config.min_content_length == 20
        assert config.text.name == "passthrough"
        assert config.db_path == tmp_path / "notes.db"

    def test_gemini_detected_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "test-key")
        config = load_or_create_config(tmp_path)
        assert config.text.name == "gemini"
        assert config.text.params["model"] == "gemini-2.5-flash"

    def test_save_and_load(self, tmp_path):
        config = StoreConfig(path=tmp_path, debounce_seconds=0.5, on_switch="flush",
                             rename_all=True)
        config.text.params["max_chars"] = 200
        save_config(config)

        loaded = load_config(tmp_path)
        assert loaded.debounce_seconds == 0.5
        assert loaded.on_switch == "flush"
        assert loaded.rename_all is True
        assert loaded.text.params == {"max_chars": 200}

    def test_existing_config_is_not_overwritten(self, tmp_path):
        save_config(StoreConfig(path=tmp_path, min_content_length=5))
        assert load_or_create_config(tmp_path).min_content_length == 5

    def test_missing_config(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path)

    @pytest.mark.parametrize("toml", [
        '[editor]\non_switch = "autosave"\n',
        "[editor]\ndebounce_seconds = -1\n",
        "[store]\nversion = 99\n",
        "not = [valid toml",
    ])
    def test_invalid_config(self, tmp_path, toml):
        (tmp_path / CONFIG_FILENAME).write_text(toml)
        with pytest.raises(ValueError):
            load_config(tmp_path)

    def test_store_dir_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MINDVAULT_STORE_PATH", str(tmp_path / "elsewhere"))
        assert get_config_dir() == (tmp_path / "elsewhere").resolve()

    def test_store_dir_default(self, monkeypatch):
        monkeypatch.delenv("MINDVAULT_STORE_PATH")
        assert get_config_dir().name == ".mindvault"
