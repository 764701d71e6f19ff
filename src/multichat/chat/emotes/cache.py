"""Layered emote catalog and on-disk emote paths."""

import logging
import re
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path

from ...core.locks import ReadWriteLock
from ..models import EmoteInfo

logger = logging.getLogger(__name__)

# Resolution order: provider by provider, channel scope before global scope
DEFAULT_PROVIDERS = ("7tv", "bttv", "ffz")
GLOBAL_SCOPE = "global"
CHANNELS_DIR_NAME = "channels"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^\w.\-]")


def channel_key(channel: str) -> str:
    """Normalize "#Login" / "login" to "login"."""
    return channel.lstrip("#").lower()


def emote_dir(cache_dir: Path, channel: str | None, provider: str) -> Path:
    """Directory holding one provider's emote files for a channel (or globals)."""
    scope = channel_key(channel) if channel else GLOBAL_SCOPE
    folder = "emotes" if provider == "twitch" else f"emotes_{provider}"
    return cache_dir / CHANNELS_DIR_NAME / scope / folder


def emote_file_path(cache_dir: Path, channel: str | None, emote: EmoteInfo) -> Path:
    """Destination PNG for an emote."""
    name = _UNSAFE_FILENAME_CHARS.sub("_", emote.name)
    filename = f"{name}_{emote.id}.png" if name else f"emote_{emote.id}.png"
    return emote_dir(cache_dir, channel, emote.provider) / filename


class _CatalogLayer:
    """One provider x scope layer, keyed by scope then display name."""

    def __init__(self) -> None:
        self.lock = ReadWriteLock()
        self.maps: dict[str, dict[str, EmoteInfo]] = {}


class BaseEmoteCatalog(ABC):
    """Lookup/populate interface for emote catalogs.

    ``scope`` is a channel name for per-channel catalogs or None for globals.
    """

    def __init__(self, providers: Iterable[str] = DEFAULT_PROVIDERS):
        self._providers = tuple(providers)

    @property
    def providers(self) -> tuple[str, ...]:
        return self._providers

    @abstractmethod
    def lookup(self, scope: str | None, provider: str, name: str) -> EmoteInfo | None:
        """Find an emote by display name in one layer."""

    @abstractmethod
    def populate(
        self, provider: str, emotes: Iterable[EmoteInfo], scope: str | None = None
    ) -> int:
        """Replace one layer's contents. Returns the number of emotes stored."""

    @abstractmethod
    def set_file_path(self, emote: EmoteInfo, file_path: str) -> None:
        """Record a downloaded file for an emote id."""

    @abstractmethod
    def file_path_for(self, emote_id: str) -> str | None:
        """Local file for a downloaded emote id, if any."""

    @abstractmethod
    def cached_emotes(self) -> dict[str, EmoteInfo]:
        """Snapshot of every downloaded emote, keyed by id."""

    def resolve(self, channel: str, name: str) -> EmoteInfo | None:
        """Find the highest-precedence emote for a word in a channel."""
        for provider in self._providers:
            emote = self.lookup(channel, provider, name)
            if emote is None:
                emote = self.lookup(None, provider, name)
            if emote is not None:
                return emote
        return None


class EmoteCatalog(BaseEmoteCatalog):
    """In-memory catalog with one read-write lock per provider x scope layer."""

    def __init__(self, providers: Iterable[str] = DEFAULT_PROVIDERS):
        super().__init__(providers)
        self._layers: dict[tuple[str, bool], _CatalogLayer] = {
            (provider, is_channel): _CatalogLayer()
            for provider in self._providers
            for is_channel in (True, False)
        }
        # Downloaded emotes keyed by id (any provider, including native)
        self._downloaded: dict[str, EmoteInfo] = {}
        self._downloaded_lock = threading.Lock()

    def _layer(self, provider: str, scope: str | None) -> _CatalogLayer | None:
        return self._layers.get((provider, scope is not None))

    @staticmethod
    def _scope_key(scope: str | None) -> str:
        return channel_key(scope) if scope is not None else GLOBAL_SCOPE

    def lookup(self, scope: str | None, provider: str, name: str) -> EmoteInfo | None:
        layer = self._layer(provider, scope)
        if layer is None:
            return None
        with layer.lock.read():
            emotes = layer.maps.get(self._scope_key(scope))
            return emotes.get(name) if emotes else None

    def populate(
        self, provider: str, emotes: Iterable[EmoteInfo], scope: str | None = None
    ) -> int:
        layer = self._layer(provider, scope)
        if layer is None:
            logger.debug(f"Ignoring emotes for unconfigured provider {provider}")
            return 0

        by_name: dict[str, EmoteInfo] = {}
        for emote in emotes:
            known = self.file_path_for(emote.id)
            if known and not emote.file_path:
                emote.file_path = known
            by_name[emote.name] = emote

        with layer.lock.write():
            layer.maps[self._scope_key(scope)] = by_name
        return len(by_name)

    def has_scope(self, scope: str) -> bool:
        """Whether any provider has a catalog loaded for this channel."""
        key = channel_key(scope)
        for (_provider, is_channel), layer in self._layers.items():
            if not is_channel:
                continue
            with layer.lock.read():
                if key in layer.maps:
                    return True
        return False

    def set_file_path(self, emote: EmoteInfo, file_path: str) -> None:
        with self._downloaded_lock:
            cached = EmoteInfo(
                id=emote.id,
                name=emote.name,
                url=emote.url,
                provider=emote.provider,
                file_path=file_path,
                image_url=emote.image_url,
            )
            self._downloaded[emote.id] = cached

        for is_channel in (True, False):
            layer = self._layer(emote.provider, "" if is_channel else None)
            if layer is None:
                continue
            with layer.lock.write():
                for emotes in layer.maps.values():
                    entry = emotes.get(emote.name)
                    if entry is not None and entry.id == emote.id:
                        entry.file_path = file_path

    def file_path_for(self, emote_id: str) -> str | None:
        with self._downloaded_lock:
            cached = self._downloaded.get(emote_id)
        return cached.file_path if cached else None

    def cached_emotes(self) -> dict[str, EmoteInfo]:
        with self._downloaded_lock:
            return dict(self._downloaded)

    def counts(self) -> dict[str, int]:
        """Number of emotes per layer, for logging."""
        result: dict[str, int] = {}
        for (provider, is_channel), layer in self._layers.items():
            with layer.lock.read():
                total = sum(len(m) for m in layer.maps.values())
            result[f"{provider}:{'channel' if is_channel else 'global'}"] = total
        return result
