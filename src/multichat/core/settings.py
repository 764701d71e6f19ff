"""Settings management for multichat."""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from appdirs import user_config_dir, user_data_dir

logger = logging.getLogger(__name__)

APP_NAME = "multichat"
APP_AUTHOR = "multichat"

KNOWN_PROVIDERS = ("7tv", "bttv", "ffz")
EMOTE_CACHE_DIR_NAME = "emote_cache"


def get_config_dir() -> Path:
    """Get the configuration directory."""
    path = Path(user_config_dir(APP_NAME, APP_AUTHOR))
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Get the data directory."""
    path = Path(user_data_dir(APP_NAME, APP_AUTHOR))
    path.mkdir(parents=True, exist_ok=True)
    return path


@dataclass
class EmoteSettings:
    """Emote provider and cache settings."""

    providers: list[str] = field(default_factory=lambda: list(KNOWN_PROVIDERS))
    max_height: int = 32  # pixels
    cache_dir: str = ""  # empty = <data dir>/emote_cache

    def resolved_cache_dir(self) -> Path:
        if self.cache_dir:
            return Path(self.cache_dir).expanduser()
        return get_data_dir() / EMOTE_CACHE_DIR_NAME


@dataclass
class MonitorSettings:
    """Polling intervals for stream status (seconds)."""

    live_status_interval: float = 120.0
    viewer_count_interval: float = 30.0
    connect_stagger: float = 0.2  # between channels in connect-all
    status_spacing: float = 0.5  # between channels in one live-status round


@dataclass
class Settings:
    """Application settings."""

    channels: list[str] = field(default_factory=list)
    filter_keywords: list[str] = field(default_factory=list)
    buffer_size: int = 256  # messages kept per channel

    emotes: EmoteSettings = field(default_factory=EmoteSettings)
    monitor: MonitorSettings = field(default_factory=MonitorSettings)

    @classmethod
    def load(cls, path: Path | None = None) -> "Settings":
        """Load settings from file. Missing or unreadable files give defaults."""
        if path is None:
            path = get_config_dir() / "settings.json"

        if not path.exists():
            return cls()

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            return cls._from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable settings file {path}: {e}")
            return cls()

    def save(self, path: Path | None = None) -> None:
        """Save settings to file."""
        if path is None:
            path = get_config_dir() / "settings.json"

        path.parent.mkdir(parents=True, exist_ok=True)

        # Write to a temp file then rename so a crash never leaves half a file
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp", prefix="settings_")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._to_dict(), f, indent=2)
            os.replace(tmp_path, path)
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    @staticmethod
    def _validate_int(value, default: int, min_val: int = 0, max_val: int | None = None) -> int:
        """Validate and constrain an integer value."""
        if not isinstance(value, int) or isinstance(value, bool):
            return default
        if value < min_val:
            return min_val
        if max_val is not None and value > max_val:
            return max_val
        return value

    @staticmethod
    def _validate_float(
        value, default: float, min_val: float = 0.0, max_val: float | None = None
    ) -> float:
        """Validate and constrain a numeric value."""
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            return default
        value = float(value)
        if value < min_val:
            return min_val
        if max_val is not None and value > max_val:
            return max_val
        return value

    @staticmethod
    def _str_list(value, default: list[str]) -> list[str]:
        if not isinstance(value, list):
            return list(default)
        return [v for v in value if isinstance(v, str) and v]

    @classmethod
    def _from_dict(cls, data: dict) -> "Settings":
        """Create Settings from a dictionary with validation."""
        settings = cls()

        settings.channels = [
            c.lstrip("#").lower() for c in cls._str_list(data.get("channels"), [])
        ]
        settings.filter_keywords = cls._str_list(data.get("filter_keywords"), [])
        settings.buffer_size = cls._validate_int(
            data.get("buffer_size"), 256, min_val=1, max_val=10000
        )

        if "emotes" in data:
            e = data["emotes"]
            providers = [
                p for p in cls._str_list(e.get("providers"), list(KNOWN_PROVIDERS))
                if p in KNOWN_PROVIDERS
            ]
            settings.emotes = EmoteSettings(
                providers=providers,
                max_height=cls._validate_int(e.get("max_height"), 32, min_val=8, max_val=512),
                cache_dir=e.get("cache_dir") or "",
            )

        if "monitor" in data:
            m = data["monitor"]
            settings.monitor = MonitorSettings(
                live_status_interval=cls._validate_float(
                    m.get("live_status_interval"), 120.0, min_val=10.0, max_val=3600.0
                ),
                viewer_count_interval=cls._validate_float(
                    m.get("viewer_count_interval"), 30.0, min_val=5.0, max_val=3600.0
                ),
                connect_stagger=cls._validate_float(
                    m.get("connect_stagger"), 0.2, max_val=10.0
                ),
                status_spacing=cls._validate_float(m.get("status_spacing"), 0.5, max_val=10.0),
            )

        return settings

    def _to_dict(self) -> dict:
        """Convert Settings to a dictionary."""
        return {
            "channels": list(self.channels),
            "filter_keywords": list(self.filter_keywords),
            "buffer_size": self.buffer_size,
            "emotes": {
                "providers": list(self.emotes.providers),
                "max_height": self.emotes.max_height,
                "cache_dir": self.emotes.cache_dir,
            },
            "monitor": {
                "live_status_interval": self.monitor.live_status_interval,
                "viewer_count_interval": self.monitor.viewer_count_interval,
                "connect_stagger": self.monitor.connect_stagger,
                "status_spacing": self.monitor.status_spacing,
            },
        }
