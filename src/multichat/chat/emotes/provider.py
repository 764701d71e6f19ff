"""Third-party emote providers: 7TV, BTTV and FFZ."""

import logging
from abc import ABC, abstractmethod
from typing import Any

import aiohttp

from ..models import EmoteInfo

logger = logging.getLogger(__name__)

PROVIDER_TIMEOUT = 15

# Largest size first
SEVENTV_SIZES = ("4x", "3x", "2x", "1x")
SEVENTV_FORMATS = ("png", "gif", "webp")
FFZ_SIZES = ("4", "2", "1")


def _https(url: str) -> str:
    return "https:" + url if url.startswith("//") else url


def parse_seventv_emote(data: dict) -> EmoteInfo | None:
    """Parse one entry of a 7TV emote set."""
    emote_data = data.get("data") or data
    emote_id = data.get("id") or emote_data.get("id", "")
    name = data.get("name") or emote_data.get("name", "")

    if not emote_id or not name:
        return None

    host = emote_data.get("host") or {}
    base_url = _https(host.get("url") or f"//cdn.7tv.app/emote/{emote_id}")

    available = {f.get("name", "") for f in host.get("files") or []}
    filename = None
    for fmt in SEVENTV_FORMATS:
        for size in SEVENTV_SIZES:
            if f"{size}.{fmt}" in available:
                filename = f"{size}.{fmt}"
                break
        if filename:
            break

    if filename is None:
        if available:
            # Only unsupported formats listed
            return None
        filename = "2x.webp"

    url = f"{base_url}/{filename}"
    return EmoteInfo(id=emote_id, name=name, url=url, provider="7tv", image_url=url)


def parse_bttv_emote(data: dict) -> EmoteInfo | None:
    """Parse a BTTV emote object."""
    emote_id = data.get("id", "")
    code = data.get("code", "")

    if not emote_id or not code:
        return None

    url = f"https://cdn.betterttv.net/emote/{emote_id}/3x"
    return EmoteInfo(id=emote_id, name=code, url=url, provider="bttv", image_url=url)


def parse_ffz_emote(data: dict) -> EmoteInfo | None:
    """Parse an FFZ emoticon, picking the largest available size."""
    emote_id = str(data.get("id", ""))
    name = data.get("name", "")

    if not emote_id or not name:
        return None

    urls = data.get("urls") or {}
    url = next((urls[size] for size in FFZ_SIZES if urls.get(size)), "")
    if not url:
        return None

    url = _https(url)
    return EmoteInfo(id=emote_id, name=name, url=url, provider="ffz", image_url=url)


class BaseEmoteProvider(ABC):
    """Base class for emote providers.

    Fetch failures are logged and yield an empty list so one provider going
    down never blocks the others.
    """

    BASE_URL = ""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name, also the catalog layer key."""

    @abstractmethod
    async def get_global_emotes(self) -> list[EmoteInfo]:
        """Fetch global emotes for this provider."""

    @abstractmethod
    async def get_channel_emotes(self, room_id: str) -> list[EmoteInfo]:
        """Fetch emotes for a Twitch channel by its numeric room id."""

    async def _get_json(self, path: str) -> Any:
        url = f"{self.BASE_URL}{path}"
        async with aiohttp.ClientSession() as session:
            async with session.get(
                url, timeout=aiohttp.ClientTimeout(total=PROVIDER_TIMEOUT)
            ) as resp:
                if resp.status != 200:
                    logger.debug(f"{self.name} request {url} failed: {resp.status}")
                    return None
                return await resp.json(content_type=None)

    async def _fetch(self, path: str, extract, what: str) -> list[EmoteInfo]:
        emotes: list[EmoteInfo] = []
        try:
            data = await self._get_json(path)
            if data is not None:
                emotes = [e for e in extract(data) if e is not None]
        except Exception as e:
            logger.warning(f"{self.name} {what} emotes error: {e}")
        return emotes


class SevenTVProvider(BaseEmoteProvider):
    """7TV emote provider."""

    BASE_URL = "https://7tv.io/v3"

    @property
    def name(self) -> str:
        return "7tv"

    async def get_global_emotes(self) -> list[EmoteInfo]:
        return await self._fetch("/emote-sets/global", self.extract_set, "global")

    async def get_channel_emotes(self, room_id: str) -> list[EmoteInfo]:
        return await self._fetch(f"/users/twitch/{room_id}", self.extract_user, room_id)

    @staticmethod
    def extract_set(data: dict) -> list[EmoteInfo | None]:
        return [parse_seventv_emote(e) for e in data.get("emotes") or []]

    @classmethod
    def extract_user(cls, data: dict) -> list[EmoteInfo | None]:
        return cls.extract_set(data.get("emote_set") or {})


class BTTVProvider(BaseEmoteProvider):
    """BetterTTV emote provider."""

    BASE_URL = "https://api.betterttv.net/3"

    @property
    def name(self) -> str:
        return "bttv"

    async def get_global_emotes(self) -> list[EmoteInfo]:
        return await self._fetch(
            "/cached/emotes/global", lambda data: [parse_bttv_emote(e) for e in data], "global"
        )

    async def get_channel_emotes(self, room_id: str) -> list[EmoteInfo]:
        return await self._fetch(f"/cached/users/twitch/{room_id}", self.extract_user, room_id)

    @staticmethod
    def extract_user(data: dict) -> list[EmoteInfo | None]:
        # Channel emotes first so they win over shared ones with the same code
        shared = [parse_bttv_emote(e) for e in data.get("sharedEmotes") or []]
        own = [parse_bttv_emote(e) for e in data.get("channelEmotes") or []]
        return shared + own


class FFZProvider(BaseEmoteProvider):
    """FrankerFaceZ emote provider."""

    BASE_URL = "https://api.frankerfacez.com/v1"

    @property
    def name(self) -> str:
        return "ffz"

    async def get_global_emotes(self) -> list[EmoteInfo]:
        return await self._fetch("/set/global", self.extract_global, "global")

    async def get_channel_emotes(self, room_id: str) -> list[EmoteInfo]:
        return await self._fetch(f"/room/id/{room_id}", self.extract_room, room_id)

    @staticmethod
    def extract_global(data: dict) -> list[EmoteInfo | None]:
        sets = data.get("sets") or {}
        emotes: list[EmoteInfo | None] = []
        for set_id in data.get("default_sets") or []:
            for emote_data in sets.get(str(set_id), {}).get("emoticons") or []:
                emotes.append(parse_ffz_emote(emote_data))
        return emotes

    @staticmethod
    def extract_room(data: dict) -> list[EmoteInfo | None]:
        emotes: list[EmoteInfo | None] = []
        for set_data in (data.get("sets") or {}).values():
            for emote_data in set_data.get("emoticons") or []:
                emotes.append(parse_ffz_emote(emote_data))
        return emotes


PROVIDER_CLASSES: dict[str, type[BaseEmoteProvider]] = {
    "7tv": SevenTVProvider,
    "bttv": BTTVProvider,
    "ffz": FFZProvider,
}


def create_providers(names) -> list[BaseEmoteProvider]:
    """Instantiate providers by name, skipping unknown ones."""
    providers = []
    for name in names:
        cls = PROVIDER_CLASSES.get(name)
        if cls is None:
            logger.warning(f"Unknown emote provider: {name}")
            continue
        providers.append(cls())
    return providers
