"""Tests for the emote engine and downloader."""

import asyncio

import pytest

from multichat.chat.emotes import downloader as downloader_module
from multichat.chat.emotes.cache import EmoteCatalog, emote_file_path
from multichat.chat.emotes.downloader import EmoteDownloader
from multichat.chat.emotes.engine import EmoteEngine
from multichat.chat.emotes.provider import BaseEmoteProvider


class FakeProvider(BaseEmoteProvider):
    def __init__(self, name, global_emotes=(), channel_emotes=None):
        self._name = name
        self._global = list(global_emotes)
        self._channel = channel_emotes or {}
        self.channel_requests = []

    @property
    def name(self):
        return self._name

    async def get_global_emotes(self):
        return list(self._global)

    async def get_channel_emotes(self, room_id):
        self.channel_requests.append(room_id)
        return list(self._channel.get(room_id, []))


class FakeDownloader(EmoteDownloader):
    """Serves canned bytes instead of hitting the network."""

    def __init__(self, catalog, cache_dir, payload=b"image-bytes"):
        super().__init__(catalog, cache_dir)
        self.payload = payload
        self.fetched = []

    async def _fetch(self, url):
        self.fetched.append(url)
        await asyncio.sleep(0)
        return self.payload


@pytest.fixture
def passthrough_normalize(monkeypatch):
    monkeypatch.setattr(downloader_module, "_normalize", lambda data, max_height: data)


def test_load_global_emotes(make_emote):
    providers = [
        FakeProvider("7tv", [make_emote("KEKW")]),
        FakeProvider("bttv", [make_emote("pepeD", provider="bttv")]),
    ]
    engine = EmoteEngine(providers=providers)

    assert asyncio.run(engine.load_global_emotes()) == 2
    assert engine.catalog.resolve("#any", "pepeD").provider == "bttv"


def test_channel_emotes_loaded_once_on_first_room_id(make_message, make_emote):
    provider = FakeProvider("7tv", channel_emotes={"42": [make_emote("chanEmote")]})
    engine = EmoteEngine(providers=[provider])

    async def scenario():
        engine.annotate(make_message(content="hello"))  # no room id yet
        engine.annotate(make_message(content="chanEmote", room_id="42"))
        engine.annotate(make_message(content="chanEmote", room_id="42"))
        await engine.wait_idle()
        return engine.annotate(make_message(content="chanEmote", room_id="42"))

    emotes = asyncio.run(scenario())

    assert provider.channel_requests == ["42"]
    assert [e.name for e in emotes] == ["chanEmote"]
    assert engine.catalog.lookup("#testchan", "7tv", "chanEmote") is not None


def test_download_updates_catalog(tmp_path, make_message, make_emote, passthrough_normalize):
    catalog = EmoteCatalog()
    emote = make_emote("KEKW", "k1")
    catalog.populate("7tv", [emote])
    downloader = FakeDownloader(catalog, tmp_path)
    engine = EmoteEngine(catalog=catalog, providers=[], downloader=downloader)

    async def scenario():
        engine.annotate(make_message(content="KEKW"))
        await engine.wait_idle()
        return engine.annotate(make_message(content="KEKW KEKW"))

    emotes = asyncio.run(scenario())

    expected = emote_file_path(tmp_path, None, emote)
    assert expected.read_bytes() == b"image-bytes"
    assert engine.file_path_for("k1") == str(expected)
    assert all(e.file_path == str(expected) for e in emotes)
    assert downloader.fetched == [emote.url]
    assert "k1" in engine.cached_emotes()


def test_channel_emote_downloaded_into_channel_dir(
    tmp_path, make_message, make_emote, passthrough_normalize
):
    catalog = EmoteCatalog()
    emote = make_emote("chanOnly", "c1", "bttv")
    catalog.populate("bttv", [emote], scope="#testchan")
    downloader = FakeDownloader(catalog, tmp_path)
    engine = EmoteEngine(catalog=catalog, providers=[], downloader=downloader)

    async def scenario():
        engine.annotate(make_message(content="chanOnly"))
        await engine.wait_idle()

    asyncio.run(scenario())

    assert emote_file_path(tmp_path, "testchan", emote).exists()


def test_downloads_are_deduplicated(tmp_path, make_emote, passthrough_normalize):
    catalog = EmoteCatalog()
    downloader = FakeDownloader(catalog, tmp_path)
    emote = make_emote("KEKW", "k1")

    async def scenario():
        first = downloader.schedule(emote)
        second = downloader.schedule(emote)
        assert first is second
        await downloader.wait_idle()

    asyncio.run(scenario())
    assert len(downloader.fetched) == 1


def test_existing_file_skips_fetch(tmp_path, make_emote):
    catalog = EmoteCatalog()
    downloader = FakeDownloader(catalog, tmp_path)
    emote = make_emote("KEKW", "k1")
    path = emote_file_path(tmp_path, None, emote)
    path.parent.mkdir(parents=True)
    path.write_bytes(b"cached")

    result = asyncio.run(downloader.download(emote))

    assert result == str(path)
    assert downloader.fetched == []
    assert catalog.file_path_for("k1") == str(path)


def test_failed_fetch_leaves_catalog_unchanged(tmp_path, make_emote):
    catalog = EmoteCatalog()
    catalog.populate("7tv", [make_emote("KEKW", "k1")])
    downloader = FakeDownloader(catalog, tmp_path, payload=None)

    result = asyncio.run(downloader.download(make_emote("KEKW", "k1")))

    assert result is None
    assert catalog.file_path_for("k1") is None
    assert catalog.lookup(None, "7tv", "KEKW").file_path is None


def test_undecodable_image_is_skipped(tmp_path, make_emote, monkeypatch):
    monkeypatch.setattr(downloader_module, "_normalize", lambda data, max_height: None)
    catalog = EmoteCatalog()
    downloader = FakeDownloader(catalog, tmp_path)

    assert asyncio.run(downloader.download(make_emote("KEKW", "k1"))) is None
    assert not any(tmp_path.rglob("*.png"))


def test_download_errors_are_absorbed(tmp_path, make_emote, monkeypatch):
    def explode(data, max_height):
        raise RuntimeError("decoder crashed")

    monkeypatch.setattr(downloader_module, "_normalize", explode)
    downloader = FakeDownloader(EmoteCatalog(), tmp_path)

    async def scenario():
        task = downloader.schedule(make_emote("KEKW", "k1"))
        return await task

    assert asyncio.run(scenario()) is None
