"""Shared test fixtures for multichat tests."""

from datetime import datetime, timezone

import pytest

from multichat.chat.models import EmoteInfo, Message


def build_message(content="Hello world!", channel="#testchan", username="TestUser", **tags):
    tag_map = {key.replace("_", "-"): value for key, value in tags.items()}
    return Message(
        username=username,
        content=content,
        channel=channel,
        tags=tag_map,
        raw=f":{username.lower()}!x@x PRIVMSG {channel} :{content}",
        timestamp=datetime(2025, 1, 1, 12, 30, 0, tzinfo=timezone.utc),
    )


def build_emote(name, emote_id=None, provider="7tv"):
    emote_id = emote_id or f"{provider}-{name}"
    url = f"https://cdn.example.com/{provider}/{emote_id}.png"
    return EmoteInfo(id=emote_id, name=name, url=url, provider=provider, image_url=url)


@pytest.fixture
def make_message():
    return build_message


@pytest.fixture
def make_emote():
    return build_emote


@pytest.fixture
def privmsg_line():
    return (
        "@badge-info=;badges=;color=#1E90FF;display-name=TestUser;emotes=;"
        "room-id=12345;tmi-sent-ts=1700000000000;user-id=999 "
        ":testuser!testuser@testuser.tmi.twitch.tv PRIVMSG #testchan :Hello world!"
    )
