from __future__ import annotations

import logging

from message_relay.application.dto.principal import Principal
from message_relay.application.exceptions import ValidationError
from message_relay.application.uow import UnitOfWork

logger = logging.getLogger(__name__)


async def mark_conversation_read(
    viewer: Principal,
    counterpart_id: str,
    uow: UnitOfWork,
) -> int:
    """Mark everything ``counterpart_id`` sent to the viewer as read.

    Messages the viewer sent are left alone. The change is committed before
    returning, so the viewer's next unread count already reflects it.
    """
    if not counterpart_id:
        raise ValidationError("Counterpart is required")
    modified = await uow.messages_w.mark_read(counterpart_id, viewer.user_id)
    await uow.commit()
    if modified:
        logger.debug("%s read %d message(s) from %s", viewer.user_id, modified, counterpart_id)
    return modified


async def unread_from(
    viewer: Principal,
    counterpart_id: str,
    uow: UnitOfWork,
) -> int:
    return await uow.messages.count_unread(viewer.user_id, sender=counterpart_id)
