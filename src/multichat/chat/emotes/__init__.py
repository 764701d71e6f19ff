"""Emote catalogs, providers and message annotation."""

from .cache import BaseEmoteCatalog, EmoteCatalog
from .downloader import EmoteDownloader
from .engine import EmoteEngine
from .matcher import parse_emotes, parse_native_emotes
from .provider import BaseEmoteProvider, BTTVProvider, FFZProvider, SevenTVProvider

__all__ = [
    "BTTVProvider",
    "BaseEmoteCatalog",
    "BaseEmoteProvider",
    "EmoteCatalog",
    "EmoteDownloader",
    "EmoteEngine",
    "FFZProvider",
    "SevenTVProvider",
    "parse_emotes",
    "parse_native_emotes",
]
