"""
Configuration management for mindvault stores.

The configuration is stored as a TOML file in the store directory.
It specifies editor timing, attachment limits, organizer behavior, and
which text provider to use.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import tomli_w


CONFIG_FILENAME = "mindvault.toml"
CONFIG_VERSION = 1

DEFAULT_DEBOUNCE_SECONDS = 1.5
DEFAULT_MAX_ATTACHMENT_BYTES = 20 * 1024 * 1024
DEFAULT_MIN_CONTENT_LENGTH = 20

SWITCH_POLICIES = ("discard", "flush")


@dataclass
class ProviderConfig:
    """Configuration for a single provider."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    # Editing sessions
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    on_switch: str = "discard"

    max_attachment_bytes: int = DEFAULT_MAX_ATTACHMENT_BYTES

    # Organizer
    min_content_length: int = DEFAULT_MIN_CONTENT_LENGTH
    rename_all: bool = False

    text: ProviderConfig = field(default_factory=lambda: ProviderConfig("passthrough"))

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def db_path(self) -> Path:
        return self.path / "notes.db"

    @property
    def legacy_path(self) -> Path:
        return self.path / "legacy.json"

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_config_dir() -> Path:
    """
    Resolve the store directory.

    Priority:
    1. MINDVAULT_STORE_PATH environment variable
    2. ~/.mindvault
    """
    env_path = os.environ.get("MINDVAULT_STORE_PATH")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path.home() / ".mindvault"


def detect_default_text_provider() -> ProviderConfig:
    """
    Pick the text provider for a new store.

    Gemini when Google credentials are present (API key or a Vertex AI
    project), otherwise the offline passthrough provider.
    """
    has_gemini = bool(
        os.environ.get("GEMINI_API_KEY")
        or os.environ.get("GOOGLE_API_KEY")
        or os.environ.get("GOOGLE_CLOUD_PROJECT")
    )
    if has_gemini:
        return ProviderConfig("gemini", {"model": "gemini-2.5-flash"})
    return ProviderConfig("passthrough")


def create_default_config(store_path: Path) -> StoreConfig:
    """Create a new config with auto-detected defaults."""
    return StoreConfig(path=store_path, text=detect_default_text_provider())


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid config {config_path}: {e}") from e

    store = data.get("store", {})
    version = store.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    editor = data.get("editor", {})
    attachments = data.get("attachments", {})
    organize = data.get("organize", {})
    text = data.get("text", {"name": "passthrough"})

    on_switch = editor.get("on_switch", "discard")
    if on_switch not in SWITCH_POLICIES:
        raise ValueError(
            f"Invalid editor.on_switch {on_switch!r} (expected one of {', '.join(SWITCH_POLICIES)})"
        )
    debounce = float(editor.get("debounce_seconds", DEFAULT_DEBOUNCE_SECONDS))
    if debounce < 0:
        raise ValueError("editor.debounce_seconds must not be negative")

    return StoreConfig(
        path=store_path,
        version=version,
        created=store.get("created", ""),
        debounce_seconds=debounce,
        on_switch=on_switch,
        max_attachment_bytes=int(attachments.get("max_bytes", DEFAULT_MAX_ATTACHMENT_BYTES)),
        min_content_length=int(organize.get("min_content_length", DEFAULT_MIN_CONTENT_LENGTH)),
        rename_all=bool(organize.get("rename_all", False)),
        text=ProviderConfig(
            name=text.get("name", "passthrough"),
            params={k: v for k, v in text.items() if k != "name"},
        ),
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    text = {"name": config.text.name}
    text.update(config.text.params)

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
        },
        "editor": {
            "debounce_seconds": config.debounce_seconds,
            "on_switch": config.on_switch,
        },
        "attachments": {
            "max_bytes": config.max_attachment_bytes,
        },
        "organize": {
            "min_content_length": config.min_content_length,
            "rename_all": config.rename_all,
        },
        "text": text,
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    else:
        config = create_default_config(store_path)
        save_config(config)
        return config
