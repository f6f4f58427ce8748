from __future__ import annotations

from message_relay.application.dto.principal import Principal
from message_relay.application.exceptions import ForbiddenError


def assert_participant(principal: Principal, user_a: str, user_b: str) -> None:
    """Raise unless the caller is one side of the conversation."""
    if principal.user_id not in (user_a, user_b):
        raise ForbiddenError("Not a participant of this conversation")


def assert_viewer(principal: Principal, recipient: str) -> None:
    # Only the recipient may clear their own unread backlog.
    if principal.user_id != recipient:
        raise ForbiddenError("Only the recipient can mark messages as read")
