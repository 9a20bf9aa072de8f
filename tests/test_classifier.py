from __future__ import annotations

import pytest

from starfall_moder_bot.classifier.spam import DEFAULT_REASON, SpamClassifier, parse_verdict
from starfall_moder_bot.errors import ClassificationError
from tests.factories import FakeGPTClient, transport_error


def test_parse_verdict_yes_with_reason() -> None:
    verdict = parse_verdict("YES\nREASON: promotional link")

    assert verdict.is_spam is True
    assert verdict.reason == "promotional link"


def test_parse_verdict_is_case_insensitive_and_trimmed() -> None:
    verdict = parse_verdict("  no \nREASON: ordinary greeting")

    assert verdict.is_spam is False
    assert verdict.reason == "ordinary greeting"


def test_parse_verdict_tolerates_markdown_around_token() -> None:
    verdict = parse_verdict("**Yes.**\nreason: casino invite")

    assert verdict.is_spam is True
    assert verdict.reason == "casino invite"


def test_parse_verdict_substitutes_default_reason() -> None:
    verdict = parse_verdict("YES")

    assert verdict.is_spam is True
    assert verdict.reason == DEFAULT_REASON


def test_parse_verdict_joins_multiline_reason() -> None:
    verdict = parse_verdict("YES\nREASON: selling accounts\nwith a shortened link")

    assert verdict.reason == "selling accounts with a shortened link"


@pytest.mark.parametrize("content", ["", "   \n  ", "Maybe\nREASON: unsure", "The message is spam"])
def test_parse_verdict_rejects_unparseable_content(content: str) -> None:
    with pytest.raises(ClassificationError):
        parse_verdict(content)


@pytest.mark.asyncio
async def test_classifier_prompt_embeds_rules_and_language() -> None:
    client = FakeGPTClient("YES\nREASON: реклама")
    classifier = SpamClassifier(client, model="test-model")

    verdict = await classifier.classify("no crypto offers", "russian", "buy BTC now")

    assert verdict.is_spam is True
    assert verdict.reason == "реклама"
    request = client.last_request
    assert request.model == "test-model"
    system = next(msg for msg in request.messages if msg["role"] == "system")
    user = next(msg for msg in request.messages if msg["role"] == "user")
    assert "no crypto offers" in system["content"]
    assert "REASON: <reason in russian>" in system["content"]
    assert user["content"] == "buy BTC now"


@pytest.mark.asyncio
async def test_classify_raises_on_transport_error() -> None:
    classifier = SpamClassifier(FakeGPTClient(error=transport_error()))

    with pytest.raises(ClassificationError):
        await classifier.classify("rules", "english", "text")


@pytest.mark.asyncio
async def test_evaluate_fails_open_on_transport_error() -> None:
    error = transport_error("Transport error: ReadTimeout")
    client = FakeGPTClient(error=error)
    classifier = SpamClassifier(client)

    verdict = await classifier.evaluate("rules", "english", "text")

    assert client.calls == 1
    assert verdict.is_spam is False
    assert verdict.reason == "Transport error: ReadTimeout"


@pytest.mark.asyncio
async def test_evaluate_fails_open_on_unparseable_answer() -> None:
    classifier = SpamClassifier(FakeGPTClient("I cannot decide"))

    verdict = await classifier.evaluate("rules", "english", "text")

    assert verdict.is_spam is False
    assert "Unparseable" in verdict.reason
