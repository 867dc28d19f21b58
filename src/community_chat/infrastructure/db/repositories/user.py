from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from community_chat.domain.entities.user import User
from community_chat.infrastructure.db.mappers import user as mapper
from community_chat.infrastructure.db.models.user import UserModel


class UserReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, user_id: str) -> User | None:
        result = await self._session.get(UserModel, user_id)
        return mapper.model_to_entity(result) if result else None

    async def get_many(self, user_ids: list[str]) -> list[User]:
        if not user_ids:
            return []
        stmt = select(UserModel).where(UserModel.id.in_(user_ids))
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def list_online(self) -> list[User]:
        stmt = (
            select(UserModel)
            .where(UserModel.is_online.is_(True))
            .order_by(UserModel.last_seen.desc().nullslast(), UserModel.id)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class UserWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def set_presence(self, user_id: str, is_online: bool, last_seen: datetime) -> bool:
        stmt = (
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(is_online=is_online, last_seen=last_seen)
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0
