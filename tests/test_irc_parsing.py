"""Tests for Twitch IRC parsing functions."""

from datetime import datetime

from multichat.chat.connections.twitch import (
    DEFAULT_COLORS,
    default_color_for,
    lighten_if_dark,
    parse_irc_tags,
    parse_prefix_nick,
    parse_privmsg,
    parse_reward_redemption,
    resolve_user_color,
)
from multichat.chat.models import DEFAULT_USER_COLOR

# --- parse_irc_tags ---


def test_parse_irc_tags_empty():
    assert parse_irc_tags("") == {}


def test_parse_irc_tags_no_at_prefix():
    assert parse_irc_tags(":nick!nick@host PRIVMSG #chan :hi") == {}


def test_parse_irc_tags_multiple():
    result = parse_irc_tags("@color=#FF0000;display-name=TestUser;subscriber=1 :x PRIVMSG #c :hi")
    assert result == {"color": "#FF0000", "display-name": "TestUser", "subscriber": "1"}


def test_parse_irc_tags_stops_at_first_space():
    result = parse_irc_tags("@a=1 :nick PRIVMSG #c :b=2;c=3")
    assert result == {"a": "1"}


def test_parse_irc_tags_without_space_is_empty():
    assert parse_irc_tags("@color=#FF0000") == {}


def test_parse_irc_tags_empty_value():
    assert parse_irc_tags("@emotes=;color= :x") == {"emotes": "", "color": ""}


def test_parse_irc_tags_drops_malformed_entries():
    result = parse_irc_tags("@a=1;flagonly;=novalue;b=2 :x")
    assert result == {"a": "1", "b": "2"}


def test_parse_irc_tags_value_with_equals():
    result = parse_irc_tags("@key=a=b=c :x")
    assert result["key"] == "a=b=c"


# --- parse_prefix_nick ---


def test_parse_prefix_nick_plain():
    assert parse_prefix_nick(":nick!nick@nick.tmi.twitch.tv PRIVMSG #c :hi") == "nick"


def test_parse_prefix_nick_after_tags():
    assert parse_prefix_nick("@a=1 :someone!s@s PRIVMSG #c :hi") == "someone"


def test_parse_prefix_nick_tag_value_with_colon():
    # A ':' inside the tag block must not be mistaken for the prefix
    assert parse_prefix_nick("@msg=x:y!z :real!r@r PRIVMSG #c :hi") == "real"


def test_parse_prefix_nick_no_prefix():
    assert parse_prefix_nick("PING :tmi.twitch.tv") == ""


def test_parse_prefix_nick_server_prefix():
    assert parse_prefix_nick(":tmi.twitch.tv 001 justinfan1234 :Welcome") == ""


# --- parse_privmsg ---


def test_parse_privmsg_channel_and_content():
    msg = parse_privmsg(":nick!nick@nick.tmi.twitch.tv PRIVMSG #xyz :hello world")
    assert msg is not None
    assert msg.channel == "#xyz"
    assert msg.content == "hello world"
    assert msg.username == "nick"


def test_parse_privmsg_without_token():
    assert parse_privmsg(":tmi.twitch.tv 001 justinfan1234 :Welcome, GLHF!") is None
    assert parse_privmsg("") is None


def test_parse_privmsg_without_content_marker():
    assert parse_privmsg(":nick!nick@host PRIVMSG #xyz") is None


def test_parse_privmsg_content_keeps_later_colons():
    msg = parse_privmsg(":nick!n@n PRIVMSG #xyz :time is 12 :30")
    assert msg.content == "time is 12 :30"


def test_parse_privmsg_full_line(privmsg_line):
    received = datetime(2025, 1, 1, 12, 0, 0)
    msg = parse_privmsg(privmsg_line, received_at=received)
    assert msg.username == "TestUser"
    assert msg.channel == "#testchan"
    assert msg.content == "Hello world!"
    assert msg.tags["room-id"] == "12345"
    assert msg.room_id == "12345"
    assert msg.raw == privmsg_line
    assert msg.timestamp == received


def test_parse_privmsg_display_name_preferred():
    msg = parse_privmsg("@display-name=Fancy :plain!p@p PRIVMSG #c :hi")
    assert msg.username == "Fancy"


def test_parse_privmsg_empty_display_name_falls_back_to_prefix():
    msg = parse_privmsg("@display-name= :plain!p@p PRIVMSG #c :hi")
    assert msg.username == "plain"


def test_parse_privmsg_no_room_id():
    msg = parse_privmsg(":nick!nick@host PRIVMSG #c :hi")
    assert msg.room_id is None


# --- colors ---


def test_lighten_if_dark_black():
    assert lighten_if_dark("#000000") == "#666666"


def test_lighten_if_dark_keeps_bright_colors():
    assert lighten_if_dark("#FFFF00") == "#FFFF00"
    assert lighten_if_dark("#ffffff") == "#FFFFFF"


def test_lighten_if_dark_red_is_lightened():
    # luminance of pure red is 76.2
    assert lighten_if_dark("#FF0000") == "#FF6666"


def test_lighten_if_dark_invalid():
    assert lighten_if_dark("#GGGGGG") is None
    assert lighten_if_dark("#FFF") is None


def test_default_color_known_values():
    assert default_color_for("a") == DEFAULT_COLORS[97 % 15]
    # (97 * 31 + 98) % 15 == 0
    assert default_color_for("ab") == DEFAULT_COLORS[0]


def test_default_color_is_case_insensitive_and_stable():
    first = default_color_for("SomeViewer")
    assert first == default_color_for("someviewer")
    assert all(default_color_for("SomeViewer") == first for _ in range(5))
    assert first in DEFAULT_COLORS


def test_default_color_long_name_wraps():
    name = "x" * 200
    assert default_color_for(name) in DEFAULT_COLORS


def test_resolve_user_color_absent_tag():
    assert resolve_user_color({}, "someone") == DEFAULT_USER_COLOR


def test_resolve_user_color_empty_tag():
    assert resolve_user_color({"color": ""}, "someone") == default_color_for("someone")


def test_resolve_user_color_set_tag():
    assert resolve_user_color({"color": "#000000"}, "someone") == "#666666"


def test_resolve_user_color_invalid_tag_is_still_valid_hex():
    color = resolve_user_color({"color": "blue"}, "someone")
    assert color == default_color_for("someone")


def test_parsed_message_color(privmsg_line):
    msg = parse_privmsg(privmsg_line)
    assert msg.color == lighten_if_dark("#1E90FF")
    assert len(msg.color) == 7 and msg.color.startswith("#")


# --- parse_reward_redemption ---

REWARD_LINE = (
    "@custom-reward-id=abc-123;display-name=Viewer;room-id=1 "
    ":viewer!viewer@viewer.tmi.twitch.tv PRIVMSG #chan :hydrate please"
)


def test_parse_reward_redemption():
    reward = parse_reward_redemption(REWARD_LINE)
    assert reward is not None
    assert reward.reward_id == "abc-123"
    assert reward.username == "Viewer"
    assert reward.user_input == "hydrate please"
    assert reward.raw == REWARD_LINE


def test_parse_reward_redemption_without_input():
    line = "@custom-reward-id=abc;display-name=Viewer :tmi.twitch.tv USERNOTICE #chan"
    reward = parse_reward_redemption(line)
    assert reward.reward_id == "abc"
    assert reward.user_input == ""


def test_parse_reward_redemption_empty_id():
    line = "@custom-reward-id=;display-name=Viewer :v!v@v PRIVMSG #chan :hi"
    assert parse_reward_redemption(line) is None


def test_parse_reward_redemption_no_tags():
    assert parse_reward_redemption(":v!v@v PRIVMSG #chan :custom-reward-id=fake") is None
