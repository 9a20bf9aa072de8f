from __future__ import annotations

import abc

import structlog

from ..adapters.openai import ChatCompletionRequest, GPTClient
from ..errors import ClassificationError
from ..models import ModerationVerdict

logger = structlog.get_logger(__name__)

DEFAULT_REASON = "No reason provided"
_TOKEN_NOISE = " \t*_`'\".:!"
_REASON_LABEL = "REASON:"


class Classifier(abc.ABC):
    """Spam classifier contract: raises ClassificationError, never guesses."""

    @abc.abstractmethod
    async def classify(self, rules: str, language: str, text: str) -> ModerationVerdict:
        ...

    async def evaluate(self, rules: str, language: str, text: str) -> ModerationVerdict:
        """Fail-open wrapper: a classification failure is a clean verdict."""
        try:
            return await self.classify(rules, language, text)
        except ClassificationError as exc:
            logger.warning("classification_failed_open", error=str(exc))
            return ModerationVerdict(is_spam=False, reason=str(exc))


def build_system_prompt(rules: str, language: str) -> str:
    return (
        "You are Anti-Spam Enforcement Service. Your task is to analyze messages and determine "
        "if they are spam based on the provided rules. "
        "Here are the rules to consider:\n"
        f"{rules}\n\n"
        "Respond format:\n"
        "YES or NO\n"
        f"REASON: <reason in {language}>\n"
    )


def parse_verdict(content: str) -> ModerationVerdict:
    """
    Decode ``YES|NO`` on the first non-empty line and the reason from the rest.

    Raises:
        ClassificationError: the content is empty or the first line is not a verdict token.
    """
    lines = [line.strip() for line in (content or "").strip().splitlines()]
    lines = [line for line in lines if line]
    if not lines:
        raise ClassificationError("Empty classifier response")

    token = lines[0].strip(_TOKEN_NOISE).upper()
    if token not in {"YES", "NO"}:
        raise ClassificationError(f"Unparseable classifier verdict: {lines[0][:40]!r}")

    reason = " ".join(lines[1:]).strip()
    if reason.upper().startswith(_REASON_LABEL):
        reason = reason[len(_REASON_LABEL):].strip()
    return ModerationVerdict(is_spam=token == "YES", reason=reason or DEFAULT_REASON)


class SpamClassifier(Classifier):
    def __init__(
        self,
        client: GPTClient,
        *,
        model: str = "gpt-4.1-mini",
        max_completion_tokens: int = 256,
    ) -> None:
        self._client = client
        self._model = model
        self._max_completion_tokens = max_completion_tokens

    async def classify(self, rules: str, language: str, text: str) -> ModerationVerdict:
        request = ChatCompletionRequest(
            model=self._model,
            messages=[
                {"role": "system", "content": build_system_prompt(rules, language)},
                {"role": "user", "content": text},
            ],
            max_completion_tokens=self._max_completion_tokens,
        )
        logger.debug("spam_classify_request", model=self._model, text_length=len(text))
        completion = await self._client.complete(request)
        verdict = parse_verdict(completion.content)
        logger.info(
            "spam_classified",
            is_spam=verdict.is_spam,
            finish_reason=completion.finish_reason,
            tokens=completion.tokens,
        )
        return verdict
