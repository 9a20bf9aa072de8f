from __future__ import annotations

import pytest

from starfall_moder_bot.models import ModerationVerdict, Sender
from starfall_moder_bot.utils.text import (
    format_history,
    format_spam_notice,
    format_verdict,
    humanize_duration,
    mention,
    parse_duration,
    parse_mute_duration,
    truncate,
)
from tests.factories import make_record


def test_truncate_keeps_short_text() -> None:
    assert truncate("short", 100) == "short"
    assert truncate("a" * 100, 100) == "a" * 100


def test_truncate_appends_marker() -> None:
    assert truncate("a" * 101, 100) == "a" * 100 + "..."


@pytest.mark.parametrize(
    ("token", "seconds"),
    [("30s", 30), ("10m", 600), ("2h", 7200), ("1d", 86400), ("1h30m", 5400), (" 5M ", 300)],
)
def test_parse_duration(token: str, seconds: int) -> None:
    assert parse_duration(token) == seconds


@pytest.mark.parametrize("token", ["", "10", "abc", "10x", "1h 30m", "m10"])
def test_parse_duration_rejects_garbage(token: str) -> None:
    with pytest.raises(ValueError):
        parse_duration(token)


@pytest.mark.parametrize(("token", "seconds"), [("30s", 30), ("1h", 3600), ("366d", 366 * 86400)])
def test_parse_mute_duration_accepts_honoured_range(token: str, seconds: int) -> None:
    assert parse_mute_duration(token) == seconds


@pytest.mark.parametrize("token", ["10s", "29s", "367d", "366d1s"])
def test_parse_mute_duration_rejects_lengths_telegram_makes_permanent(token: str) -> None:
    with pytest.raises(ValueError, match="between 30s and 366d"):
        parse_mute_duration(token)


def test_humanize_duration() -> None:
    assert humanize_duration(5400) == "1h 30m"
    assert humanize_duration(90061) == "1d 1h 1m 1s"
    assert humanize_duration(0) == "0s"


def test_mention_links_users_and_bolds_channels() -> None:
    user = Sender(user_id=7, display_name="Eve <3")
    channel = Sender(sender_chat_id=-500, display_name="News")

    assert mention(user) == '<a href="tg://user?id=7">Eve &lt;3</a>'
    assert mention(channel) == "<b>News</b>"


def test_spam_notice_layout() -> None:
    notice = format_spam_notice(
        Sender(user_id=7, display_name="Eve"),
        "buy followers",
        ["deleted the message", "muted the user"],
        "promotional link",
    )

    assert notice.splitlines() == [
        '⚠️ Spam detected from <a href="tg://user?id=7">Eve</a>',
        "Message: <i>“buy followers”</i>",
        "Action: deleted the message, muted the user",
        "Reason: promotional link",
    ]


def test_spam_notice_without_actions() -> None:
    notice = format_spam_notice(Sender(user_id=7, display_name="Eve"), "x", [], "r")

    assert "Action: no action taken" in notice


def test_format_verdict_labels() -> None:
    assert format_verdict(ModerationVerdict(True, "ad")) == "🚨 SPAM\nReason: ad"
    assert format_verdict(ModerationVerdict(False, "ok")).startswith("✅ NOT SPAM")


def test_format_history_marks_handled_state() -> None:
    text = format_history([make_record(), make_record(handled=True)])

    lines = text.splitlines()
    assert "⏳ open" in lines[0]
    assert "✅ handled" in lines[2]
    assert "<b>Test Group</b>" in lines[0]
