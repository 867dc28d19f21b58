from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from community_chat.application.dto.chat import ChatListEntry
from community_chat.domain.entities.message import Message
from community_chat.infrastructure.db.mappers import message as mapper
from community_chat.infrastructure.db.models.message import MessageModel


def _like_pattern(query: str) -> str:
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _involving(user_id: str):
    return or_(MessageModel.sender_id == user_id, MessageModel.receiver_id == user_id)


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, message_id: UUID) -> Message | None:
        result = await self._session.get(MessageModel, message_id)
        return mapper.model_to_entity(result) if result else None

    async def list_for_conversation(
        self,
        conversation_id: str,
        *,
        offset: int = 0,
        limit: int = 50,
    ) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(MessageModel.conversation_id == conversation_id)
            .order_by(MessageModel.created_at.desc(), MessageModel.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def count_for_conversation(self, conversation_id: str) -> int:
        stmt = select(func.count()).where(MessageModel.conversation_id == conversation_id)
        return (await self._session.execute(stmt)).scalar_one()

    async def search(
        self,
        user_id: str,
        query: str,
        *,
        offset: int = 0,
        limit: int = 20,
    ) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(
                _involving(user_id),
                MessageModel.body.ilike(_like_pattern(query), escape="\\"),
            )
            .order_by(MessageModel.created_at.desc(), MessageModel.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def count_search(self, user_id: str, query: str) -> int:
        stmt = select(func.count()).where(
            _involving(user_id),
            MessageModel.body.ilike(_like_pattern(query), escape="\\"),
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def chat_list(self, user_id: str) -> list[ChatListEntry]:
        counterpart = case(
            (MessageModel.sender_id == user_id, MessageModel.receiver_id),
            else_=MessageModel.sender_id,
        )
        unread_for_user = case(
            (and_(MessageModel.receiver_id == user_id, MessageModel.is_read.is_(False)), 1),
            else_=0,
        )
        ranked = (
            select(
                MessageModel.id.label("id"),
                counterpart.label("counterpart_id"),
                func.row_number()
                .over(
                    partition_by=counterpart,
                    order_by=(MessageModel.created_at.desc(), MessageModel.id.desc()),
                )
                .label("rn"),
                func.sum(unread_for_user).over(partition_by=counterpart).label("unread"),
            )
            .where(_involving(user_id))
            .subquery()
        )
        stmt = (
            select(MessageModel, ranked.c.counterpart_id, ranked.c.unread)
            .join(ranked, ranked.c.id == MessageModel.id)
            .where(ranked.c.rn == 1)
            .order_by(MessageModel.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return [
            ChatListEntry(
                counterpart_id=cp,
                last_message=mapper.model_to_entity(model),
                unread_count=int(unread or 0),
            )
            for model, cp, unread in result.all()
        ]


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, message: Message) -> Message:
        model = mapper.entity_to_model(message)
        self._session.add(model)
        await self._session.flush()
        return mapper.model_to_entity(model)

    async def mark_read(
        self,
        message_ids: list[UUID],
        reader_id: str,
        read_at: datetime,
    ) -> list[Message]:
        stmt = (
            update(MessageModel)
            .where(
                MessageModel.id.in_(message_ids),
                MessageModel.receiver_id == reader_id,
                MessageModel.is_read.is_(False),
            )
            .values(is_read=True, read_at=read_at)
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def mark_read_from(self, sender_id: str, reader_id: str, read_at: datetime) -> list[Message]:
        stmt = (
            update(MessageModel)
            .where(
                MessageModel.sender_id == sender_id,
                MessageModel.receiver_id == reader_id,
                MessageModel.is_read.is_(False),
            )
            .values(is_read=True, read_at=read_at)
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def delete(self, message_id: UUID) -> None:
        await self._session.execute(delete(MessageModel).where(MessageModel.id == message_id))
