from __future__ import annotations

import logging
from datetime import datetime

from community_chat.application.uow import UnitOfWork
from community_chat.domain.entities.user import User

logger = logging.getLogger(__name__)


async def set_presence(
    user_id: str,
    is_online: bool,
    last_seen: datetime,
    uow: UnitOfWork,
) -> bool:
    """Write the durable presence flags. Returns False for unknown users."""
    found = await uow.users_w.set_presence(user_id, is_online, last_seen)
    if not found:
        logger.warning("Presence update for unknown user %s ignored", user_id)
        await uow.rollback()
        return False
    await uow.commit()
    return True


async def list_online_users(uow: UnitOfWork) -> list[User]:
    return await uow.users.list_online()
