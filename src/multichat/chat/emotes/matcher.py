"""Locate emotes inside message text."""

import logging

from ..models import EmoteInfo, EmotePosition, Message
from .cache import BaseEmoteCatalog

logger = logging.getLogger(__name__)

TWITCH_EMOTE_URL = "https://static-cdn.jtvnw.net/emoticons/v2/{id}/default/dark/3.0"


def parse_native_emotes(emotes_tag: str, content: str) -> list[EmoteInfo]:
    """Parse the Twitch ``emotes`` tag into one EmoteInfo per occurrence.

    Format: ``<id>:<start>-<end>,<start>-<end>/<id>:<start>-<end>``, with
    inclusive code-point offsets into the message. Ranges that fall outside
    the content are discarded.
    """
    emotes: list[EmoteInfo] = []
    if not emotes_tag:
        return emotes

    length = len(content)
    for group in emotes_tag.split("/"):
        emote_id, sep, ranges = group.partition(":")
        if not sep or not emote_id or not ranges:
            continue

        url = TWITCH_EMOTE_URL.format(id=emote_id)
        for span in ranges.split(","):
            start_str, dash, end_str = span.partition("-")
            if not dash:
                continue
            try:
                start, end = int(start_str), int(end_str)
            except ValueError:
                continue
            if start < 0 or end < start or end >= length:
                continue
            # One entry per occurrence, like third-party matches
            emotes.append(
                EmoteInfo(
                    id=emote_id,
                    name=content[start : end + 1],
                    url=url,
                    provider="twitch",
                    image_url=url,
                    positions=[EmotePosition(start, end)],
                )
            )

    emotes.sort(key=lambda e: e.positions[0].start)
    return emotes


def find_candidate_words(content: str, covered: list[bool]) -> list[tuple[int, int, str]]:
    """Split uncovered text into whitespace-delimited words.

    Returns ``(start, end, word)`` tuples with inclusive offsets.
    """
    words: list[tuple[int, int, str]] = []
    start = -1
    for i, ch in enumerate(content):
        if ch.isspace() or covered[i]:
            if start >= 0:
                words.append((start, i - 1, content[start:i]))
                start = -1
        elif start < 0:
            start = i
    if start >= 0:
        words.append((start, len(content) - 1, content[start:]))
    return words


def parse_emotes(message: Message, catalog: BaseEmoteCatalog) -> list[EmoteInfo]:
    """Find native and third-party emotes in a message, ordered by position.

    Native emotes come from the message's ``emotes`` tag. Remaining words are
    looked up in the catalog for the message's channel; a word matches only
    as a whole.
    """
    content = message.content
    native = parse_native_emotes(message.tags.get("emotes", ""), content)

    covered = [False] * len(content)
    for emote in native:
        emote.file_path = catalog.file_path_for(emote.id)
        for pos in emote.positions:
            for i in range(pos.start, pos.end + 1):
                covered[i] = True

    found: list[EmoteInfo] = list(native)
    for start, end, word in find_candidate_words(content, covered):
        emote = catalog.resolve(message.channel, word)
        if emote is not None:
            found.append(emote.at(start, end, word))

    found.sort(key=lambda e: e.positions[0].start if e.positions else 0)
    return found
