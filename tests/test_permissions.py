from __future__ import annotations

import pytest

from starfall_moder_bot.models import CapabilitySnapshot, MemberStatus, Sender
from starfall_moder_bot.permissions.resolver import CapabilityResolver
from tests.factories import BOT_ID, CHAT_ID, USER_ID, FakePlatform


def user_sender(user_id: int = USER_ID) -> Sender:
    return Sender(user_id=user_id, display_name="Tester")


@pytest.mark.asyncio
async def test_admin_bot_with_rights_and_regular_sender() -> None:
    platform = FakePlatform()
    resolver = CapabilityResolver(platform)

    snapshot = await resolver.resolve(CHAT_ID, user_sender(), BOT_ID)

    assert snapshot == CapabilitySnapshot(bot_can_delete=True, bot_can_restrict=True, sender_is_admin=False)


@pytest.mark.asyncio
async def test_rights_require_administrator_status() -> None:
    platform = FakePlatform(bot_status=MemberStatus.MEMBER, bot_can_delete=True, bot_can_restrict=True)
    resolver = CapabilityResolver(platform)

    snapshot = await resolver.resolve(CHAT_ID, user_sender(), BOT_ID)

    assert snapshot.bot_can_delete is False
    assert snapshot.bot_can_restrict is False


@pytest.mark.asyncio
async def test_individual_rights_are_checked_separately() -> None:
    platform = FakePlatform(bot_can_delete=True, bot_can_restrict=False)
    resolver = CapabilityResolver(platform)

    snapshot = await resolver.resolve(CHAT_ID, user_sender(), BOT_ID)

    assert snapshot.bot_can_delete is True
    assert snapshot.bot_can_restrict is False


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [MemberStatus.ADMINISTRATOR, MemberStatus.CREATOR])
async def test_sender_admin_statuses(status: MemberStatus) -> None:
    platform = FakePlatform(sender_status=status)
    resolver = CapabilityResolver(platform)

    snapshot = await resolver.resolve(CHAT_ID, user_sender(), BOT_ID)

    assert snapshot.sender_is_admin is True


@pytest.mark.asyncio
async def test_lookup_failure_returns_conservative_snapshot() -> None:
    platform = FakePlatform()
    platform.failing.add("get_membership")
    resolver = CapabilityResolver(platform)

    snapshot = await resolver.resolve(CHAT_ID, user_sender(), BOT_ID)

    assert snapshot == CapabilitySnapshot.conservative()


@pytest.mark.asyncio
async def test_channel_sender_is_never_admin_and_not_looked_up() -> None:
    platform = FakePlatform(sender_status=MemberStatus.CREATOR)
    resolver = CapabilityResolver(platform)

    snapshot = await resolver.resolve(CHAT_ID, Sender(sender_chat_id=-500, display_name="Channel"), BOT_ID)

    assert snapshot.sender_is_admin is False
    looked_up = [call[2] for call in platform.calls if call[0] == "get_membership"]
    assert looked_up == [BOT_ID]


@pytest.mark.asyncio
async def test_anonymous_group_admin_counts_as_admin() -> None:
    platform = FakePlatform()
    resolver = CapabilityResolver(platform)

    snapshot = await resolver.resolve(CHAT_ID, Sender(sender_chat_id=CHAT_ID, display_name="Group"), BOT_ID)

    assert snapshot.sender_is_admin is True


@pytest.mark.asyncio
async def test_is_chat_admin_is_false_on_lookup_failure() -> None:
    platform = FakePlatform(sender_status=MemberStatus.CREATOR)
    resolver = CapabilityResolver(platform)
    assert await resolver.is_chat_admin(CHAT_ID, USER_ID) is True

    platform.failing.add("get_membership")
    assert await resolver.is_chat_admin(CHAT_ID, USER_ID) is False
