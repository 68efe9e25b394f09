# -*- coding: utf-8 -*-
"""Group membership gate in front of search results and movie details."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Sequence

from telegram.constants import ChatMemberStatus

logger = logging.getLogger(__name__)

# (group_id, user_id) -> chat member status string
MembershipLookup = Callable[[str, int], Awaitable[str]]

# OWNER is reported as "creator"
MEMBER_STATUSES = [
    ChatMemberStatus.MEMBER,
    ChatMemberStatus.ADMINISTRATOR,
    ChatMemberStatus.OWNER,
]


@dataclass(frozen=True)
class GroupDescriptor:
    id: str
    invite_link: str
    name: str


@dataclass(frozen=True)
class MembershipStatus:
    missing_groups: List[GroupDescriptor] = field(default_factory=list)

    @property
    def satisfied(self) -> bool:
        return not self.missing_groups


async def is_member(lookup: MembershipLookup, group: GroupDescriptor, user_id: int) -> bool:
    # Any failure counts as "not joined": the bot may not be admin there,
    # the group id may be stale, or Telegram may be unreachable.
    try:
        status = await lookup(group.id, user_id)
    except Exception as e:
        logger.warning("Membership check failed for user %s in %s (%s): %s", user_id, group.name, group.id, e)
        return False
    return status in MEMBER_STATUSES


async def check_membership(user_id: int, groups: Sequence[GroupDescriptor], lookup: MembershipLookup) -> MembershipStatus:
    """Which of the required groups the user has not joined, in configured order."""
    results = await asyncio.gather(*(is_member(lookup, g, user_id) for g in groups))
    missing = [g for g, joined in zip(groups, results) if not joined]
    return MembershipStatus(missing_groups=missing)
