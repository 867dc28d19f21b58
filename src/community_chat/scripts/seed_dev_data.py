"""Seed development data: creates the tables, two users and a short conversation."""
from __future__ import annotations

import asyncio
import logging

from community_chat.application.dto.message import SendMessageDTO
from community_chat.config import settings
from community_chat.infrastructure.db.base import Base
from community_chat.infrastructure.db.models import UserModel
from community_chat.infrastructure.db.session import AsyncSessionLocal, engine
from community_chat.infrastructure.db.uow import SqlAlchemyUoW
from community_chat.logging_config import configure_logging
from community_chat.services import message_service

logger = logging.getLogger(__name__)

DEV_USERS = [
    ("u-alice", "Alice"),
    ("u-bob", "Bob"),
]


async def seed() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        for user_id, name in DEV_USERS:
            if await session.get(UserModel, user_id) is None:
                session.add(UserModel(id=user_id, display_name=name))
        await session.commit()

        uow = SqlAlchemyUoW(session)
        conversation = [
            ("u-alice", "u-bob", "Hi Bob, are you coming to the meetup?"),
            ("u-bob", "u-alice", "Yes! See you at 6."),
            ("u-alice", "u-bob", "Great, I'll save a seat."),
        ]
        for sender, receiver, body in conversation:
            await message_service.send_message(
                SendMessageDTO(sender_id=sender, receiver_id=receiver, body=body), uow,
            )
        logger.info("Seeded %d users and %d messages", len(DEV_USERS), len(conversation))

    await engine.dispose()


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
