"""Read-only snapshots used by clients to rebuild state after a reload."""
from __future__ import annotations

from dataclasses import dataclass

from message_relay.application.dto.principal import Principal
from message_relay.application.policies.permissions import assert_participant
from message_relay.application.uow import UnitOfWork
from message_relay.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class HistorySnapshot:
    receiver: str
    messages: list[Message]
    unread_by_counterpart: dict[str, int]


async def participant_history(principal: Principal, uow: UnitOfWork) -> HistorySnapshot:
    messages = await uow.messages.find_for_participant(principal.user_id)
    unread = await uow.messages.count_unread_by_sender(principal.user_id)
    return HistorySnapshot(
        receiver=principal.user_id,
        messages=messages,
        unread_by_counterpart=unread,
    )


async def unread_count(
    principal: Principal,
    uow: UnitOfWork,
    *,
    sender: str | None = None,
) -> int:
    return await uow.messages.count_unread(principal.user_id, sender=sender)


async def pair_history(
    principal: Principal,
    sender: str,
    receiver: str,
    uow: UnitOfWork,
) -> list[Message]:
    assert_participant(principal, sender, receiver)
    return await uow.messages.find_between(sender, receiver)
