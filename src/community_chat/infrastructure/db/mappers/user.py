from __future__ import annotations

from community_chat.domain.entities.user import User
from community_chat.infrastructure.db.models.user import UserModel


def model_to_entity(model: UserModel) -> User:
    return User(
        id=model.id,
        display_name=model.display_name,
        avatar_url=model.avatar_url,
        is_online=model.is_online,
        last_seen=model.last_seen,
    )
