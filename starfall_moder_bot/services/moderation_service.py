from __future__ import annotations

from typing import Optional

import structlog

from ..adapters.openai import GPTClient
from ..adapters.platform import PlatformGateway
from ..appeals.workflow import AppealWorkflow
from ..classifier.spam import Classifier, SpamClassifier
from ..config import BotSettings
from ..history.store import ViolationHistory
from ..models import MessageEnvelope, ModerationOutcome, ModerationState
from ..permissions.resolver import CapabilityResolver
from ..policies.store import PolicyStore
from ..punishments.engine import PunishmentEngine
from ..storage.base import KeyValueStore
from ..storage.markers import ProcessedMessageMarker

logger = structlog.get_logger(__name__)


class ModerationCoordinator:
    """
    Per-message moderation pipeline.

    policy → classifier (fail-open) → capability resolver → punishment engine.
    Nothing after classification runs for a clean verdict, and no state is
    kept between messages apart from what lives in the key-value store.
    """

    def __init__(
        self,
        *,
        classifier: Classifier,
        resolver: CapabilityResolver,
        engine: PunishmentEngine,
        policies: PolicyStore,
        history: ViolationHistory,
        appeals: AppealWorkflow,
        bot_id: int,
        markers: Optional[ProcessedMessageMarker] = None,
    ) -> None:
        self.classifier = classifier
        self.resolver = resolver
        self.engine = engine
        self.policies = policies
        self.history = history
        self.appeals = appeals
        self._bot_id = bot_id
        self._markers = markers

    @classmethod
    def from_settings(
        cls,
        settings: BotSettings,
        *,
        platform: PlatformGateway,
        store: KeyValueStore,
        gpt_client: GPTClient,
    ) -> "ModerationCoordinator":
        history = ViolationHistory(store)
        enforcement = settings.enforcement
        return cls(
            classifier=SpamClassifier(gpt_client, model=settings.openai.model),
            resolver=CapabilityResolver(platform),
            engine=PunishmentEngine(
                platform,
                history,
                recorded_punishments=enforcement.recorded_punishments,
                notify_users=enforcement.notify_users,
                preview_chars=enforcement.preview_chars,
            ),
            policies=PolicyStore(store, settings.policy_defaults.to_policy()),
            history=history,
            appeals=AppealWorkflow(
                platform,
                history,
                fallback_contact=settings.appeals.fallback_contact,
                preview_chars=enforcement.preview_chars,
            ),
            bot_id=platform.bot_id,
            markers=ProcessedMessageMarker(
                store,
                enforcement.dedupe_ttl_seconds,
                purge_every=enforcement.purge_every_claims,
            ),
        )

    async def handle(self, message: MessageEnvelope) -> ModerationOutcome:
        ctx = message.context
        with structlog.contextvars.bound_contextvars(chat_id=ctx.chat_id, message_id=ctx.message_id):
            text = message.content_text().strip()
            if ctx.is_private or not text or ctx.sender.is_bot:
                logger.debug("moderation_skipped", private=ctx.is_private, empty=not text)
                return ModerationOutcome(state=ModerationState.SKIPPED)
            if self._markers is not None and not await self._markers.claim(ctx.chat_id, ctx.message_id):
                return ModerationOutcome(state=ModerationState.SKIPPED)

            policy = await self.policies.get_policy(ctx.chat_id)
            verdict = await self.classifier.evaluate(policy.rules, policy.language, text)
            if not verdict.is_spam:
                logger.debug("moderation_clean")
                return ModerationOutcome(state=ModerationState.CLEAN, verdict=verdict)

            logger.info("spam_detected", user_id=ctx.sender.user_id, reason=verdict.reason)
            capability = await self.resolver.resolve(ctx.chat_id, ctx.sender, self._bot_id)
            return await self.engine.enforce(message, verdict, capability, policy)
