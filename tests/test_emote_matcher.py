"""Tests for emote location in message text."""

from multichat.chat.emotes.cache import EmoteCatalog
from multichat.chat.emotes.matcher import (
    find_candidate_words,
    parse_emotes,
    parse_native_emotes,
)
from multichat.chat.models import EmotePosition


class _RecordingCatalog(EmoteCatalog):
    """Catalog that remembers every word it was asked to resolve."""

    def __init__(self):
        super().__init__()
        self.resolved_words = []

    def resolve(self, channel, name):
        self.resolved_words.append(name)
        return super().resolve(channel, name)


# --- parse_native_emotes ---


def test_parse_native_emotes_single():
    emotes = parse_native_emotes("25:0-4", "Kappa test")
    assert len(emotes) == 1
    assert emotes[0].id == "25"
    assert emotes[0].name == "Kappa"
    assert emotes[0].provider == "twitch"
    assert emotes[0].positions == [EmotePosition(0, 4)]


def test_parse_native_emotes_multiple_groups_and_ranges():
    content = "Kappa Keepo Kappa"
    emotes = parse_native_emotes("25:0-4,12-16/1902:6-10", content)
    assert [(e.id, e.name, e.positions) for e in emotes] == [
        ("25", "Kappa", [EmotePosition(0, 4)]),
        ("1902", "Keepo", [EmotePosition(6, 10)]),
        ("25", "Kappa", [EmotePosition(12, 16)]),
    ]


def test_parse_native_emotes_discards_out_of_bounds():
    emotes = parse_native_emotes("25:0-4,20-24", "Kappa")
    assert emotes[0].positions == [EmotePosition(0, 4)]
    assert parse_native_emotes("25:3-10", "Kappa") == []


def test_parse_native_emotes_malformed():
    assert parse_native_emotes("", "Kappa") == []
    assert parse_native_emotes("25", "Kappa") == []
    assert parse_native_emotes("25:a-b", "Kappa") == []
    assert parse_native_emotes("25:4-0", "Kappa") == []


def test_parse_native_emotes_uses_code_points():
    content = "\U0001f600 Kappa"
    emotes = parse_native_emotes("25:2-6", content)
    assert emotes[0].name == "Kappa"


# --- find_candidate_words ---


def test_find_candidate_words_splits_on_spaces():
    content = "hi  there friend"
    words = find_candidate_words(content, [False] * len(content))
    assert words == [(0, 1, "hi"), (4, 8, "there"), (10, 15, "friend")]


def test_find_candidate_words_skips_covered():
    content = "Kappa test"
    covered = [True] * 5 + [False] * 5
    assert find_candidate_words(content, covered) == [(6, 9, "test")]


# --- parse_emotes ---


def test_native_range_is_not_looked_up(make_message, make_emote):
    catalog = _RecordingCatalog()
    catalog.populate("7tv", [make_emote("Kappa", "7tv-kappa")])
    msg = make_message(content="Kappa test", emotes="25:0-4")

    emotes = parse_emotes(msg, catalog)

    assert "Kappa" not in catalog.resolved_words
    assert catalog.resolved_words == ["test"]
    assert [(e.id, e.provider) for e in emotes] == [("25", "twitch")]


def test_third_party_emotes_resolved(make_message, make_emote):
    catalog = EmoteCatalog()
    catalog.populate("bttv", [make_emote("catJAM", "b1", provider="bttv")])
    catalog.populate("ffz", [make_emote("OMEGALUL", "f1", provider="ffz")])
    msg = make_message(content="OMEGALUL that was catJAM")

    emotes = parse_emotes(msg, catalog)

    assert [e.name for e in emotes] == ["OMEGALUL", "catJAM"]
    assert emotes[0].positions == [EmotePosition(0, 7)]
    assert emotes[1].positions == [EmotePosition(18, 23)]


def test_repeated_word_gets_one_entry_per_occurrence(make_message, make_emote):
    catalog = EmoteCatalog()
    catalog.populate("7tv", [make_emote("KEKW")])
    emotes = parse_emotes(make_message(content="KEKW KEKW"), catalog)
    assert [e.positions[0].start for e in emotes] == [0, 5]


def test_partial_word_does_not_match(make_message, make_emote):
    catalog = EmoteCatalog()
    catalog.populate("7tv", [make_emote("KEKW")])
    assert parse_emotes(make_message(content="KEKWait KEKW!"), catalog) == []


def test_merged_results_sorted_by_start(make_message, make_emote):
    catalog = EmoteCatalog()
    catalog.populate("7tv", [make_emote("Clap")])
    msg = make_message(content="Clap Kappa Clap", emotes="25:5-9")

    emotes = parse_emotes(msg, catalog)

    assert [(e.name, e.positions[0].start) for e in emotes] == [
        ("Clap", 0),
        ("Kappa", 5),
        ("Clap", 11),
    ]


def test_repeated_native_emote_sorted_around_third_party(make_message, make_emote):
    catalog = EmoteCatalog()
    catalog.populate("7tv", [make_emote("KEKW")])
    msg = make_message(content="Kappa KEKW Kappa", emotes="25:0-4,11-15")

    emotes = parse_emotes(msg, catalog)

    assert [(e.name, e.provider, e.positions[0].start) for e in emotes] == [
        ("Kappa", "twitch", 0),
        ("KEKW", "7tv", 6),
        ("Kappa", "twitch", 11),
    ]
    assert all(len(e.positions) == 1 for e in emotes)


def test_no_emotes(make_message):
    assert parse_emotes(make_message(content="just text"), EmoteCatalog()) == []
    assert parse_emotes(make_message(content=""), EmoteCatalog()) == []


def test_native_emote_picks_up_downloaded_file(make_message):
    catalog = EmoteCatalog()
    native = parse_native_emotes("25:0-4", "Kappa")[0]
    catalog.set_file_path(native, "/tmp/Kappa_25.png")

    emotes = parse_emotes(make_message(content="Kappa", emotes="25:0-4"), catalog)

    assert emotes[0].file_path == "/tmp/Kappa_25.png"
