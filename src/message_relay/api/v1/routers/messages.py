from __future__ import annotations

from fastapi import APIRouter, Query

from message_relay.api.deps import CurrentPrincipal, UoWDep
from message_relay.api.v1.schemas.message import (
    MarkReadRequest,
    MarkReadResponse,
    MessageHistoryResponse,
    MessageResponse,
    UnreadCountResponse,
)
from message_relay.application.policies.permissions import assert_viewer
from message_relay.services import history_service, read_state_service

router = APIRouter(prefix="/api/messages", tags=["messages"])


@router.get("", response_model=MessageHistoryResponse)
async def get_my_messages(
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> MessageHistoryResponse:
    snapshot = await history_service.participant_history(principal, uow)
    return MessageHistoryResponse(
        messages=[MessageResponse.model_validate(m) for m in snapshot.messages],
        receiver=snapshot.receiver,
        unread_by_counterpart=snapshot.unread_by_counterpart,
    )


@router.get("/unreadCount", response_model=UnreadCountResponse)
async def get_unread_count(
    principal: CurrentPrincipal,
    uow: UoWDep,
    sender: str | None = Query(None, min_length=1),
) -> UnreadCountResponse:
    count = await history_service.unread_count(principal, uow, sender=sender)
    return UnreadCountResponse(unread_count=count)


@router.get("/{sender}/{receiver}", response_model=list[MessageResponse])
async def get_chat_messages(
    sender: str,
    receiver: str,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> list[MessageResponse]:
    messages = await history_service.pair_history(principal, sender, receiver, uow)
    return [MessageResponse.model_validate(m) for m in messages]


@router.patch("", response_model=MarkReadResponse)
async def read_my_messages(
    body: MarkReadRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> MarkReadResponse:
    assert_viewer(principal, body.receiver)
    modified = await read_state_service.mark_conversation_read(principal, body.sender, uow)
    return MarkReadResponse(modified_count=modified)
