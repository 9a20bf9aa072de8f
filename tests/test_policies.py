from __future__ import annotations

import pytest

from starfall_moder_bot.errors import StoreError
from starfall_moder_bot.models import ChatPolicy, PunishmentKind
from starfall_moder_bot.policies.store import PolicyStore
from tests.factories import CHAT_ID, InMemoryStore


@pytest.mark.asyncio
async def test_defaults_apply_when_unset() -> None:
    policies = PolicyStore(InMemoryStore())

    policy = await policies.get_policy(CHAT_ID)

    assert policy == ChatPolicy(
        rules="general spam detection",
        language="english",
        punishment=PunishmentKind.MUTE,
        mute_duration_seconds=None,
    )


@pytest.mark.asyncio
async def test_punishment_read_is_stable_until_changed() -> None:
    store = InMemoryStore()
    policies = PolicyStore(store)

    await policies.set_punishment(CHAT_ID, PunishmentKind.BAN)

    assert store.data[f"punishment_{CHAT_ID}"][0] == "ban"
    assert (await policies.get_policy(CHAT_ID)).punishment == PunishmentKind.BAN
    assert (await policies.get_policy(CHAT_ID)).punishment == PunishmentKind.BAN

    await policies.set_punishment(CHAT_ID, PunishmentKind.KICK)
    assert (await policies.get_policy(CHAT_ID)).punishment == PunishmentKind.KICK


@pytest.mark.asyncio
async def test_policies_are_scoped_per_chat() -> None:
    policies = PolicyStore(InMemoryStore())

    await policies.set_rules(CHAT_ID, "no casino links")
    await policies.set_language(CHAT_ID, "Russian")

    policy = await policies.get_policy(CHAT_ID)
    other = await policies.get_policy(CHAT_ID - 1)
    assert policy.rules == "no casino links"
    assert policy.language == "russian"
    assert other.rules == "general spam detection"


@pytest.mark.asyncio
async def test_unknown_stored_punishment_falls_back_to_default() -> None:
    store = InMemoryStore()
    await store.put(f"punishment_{CHAT_ID}", "exile")
    policies = PolicyStore(store, ChatPolicy(punishment=PunishmentKind.DELETE))

    assert (await policies.get_policy(CHAT_ID)).punishment == PunishmentKind.DELETE


@pytest.mark.asyncio
async def test_read_failure_means_no_policy_set() -> None:
    store = InMemoryStore()
    policies = PolicyStore(store)
    await policies.set_punishment(CHAT_ID, PunishmentKind.BAN)
    store.fail_reads = True

    policy = await policies.get_policy(CHAT_ID)

    assert policy.punishment == PunishmentKind.MUTE


@pytest.mark.asyncio
async def test_write_failure_propagates_to_caller() -> None:
    store = InMemoryStore()
    store.fail_writes = True
    policies = PolicyStore(store)

    with pytest.raises(StoreError):
        await policies.set_rules(CHAT_ID, "anything")


@pytest.mark.asyncio
async def test_mute_duration_and_reset() -> None:
    store = InMemoryStore()
    policies = PolicyStore(store)
    await policies.set_mute_duration(CHAT_ID, 600)
    await policies.set_punishment(CHAT_ID, PunishmentKind.BAN)
    assert (await policies.get_policy(CHAT_ID)).mute_duration_seconds == 600

    await policies.set_mute_duration(CHAT_ID, None)
    assert (await policies.get_policy(CHAT_ID)).mute_duration_seconds is None

    await policies.reset(CHAT_ID)
    assert await policies.get_policy(CHAT_ID) == ChatPolicy()
    assert not store.data
