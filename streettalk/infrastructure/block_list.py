from __future__ import annotations

from streettalk.constants import USERS_COLLECTION
from streettalk.domain.errors import BlockedListLookupFailure, QueryFailure, ValidationError
from streettalk.domain.validators import validate_user_id
from streettalk.infrastructure.document_store import DocumentStore


BLOCKED_FIELD = "blockedUsers"


class BlockListService:
    """
    Blocked authors live on the blocker's profile: users/{uid}.blockedUsers.
    Nothing is cached here; every lookup reads the profile.
    """

    def __init__(self, *, store: DocumentStore) -> None:
        self._store = store

    async def get_blocked_users(self, user_id: str) -> list[str]:
        validate_user_id(user_id)
        try:
            profile = await self._store.get(USERS_COLLECTION, user_id)
        except QueryFailure as exc:
            raise BlockedListLookupFailure(f"blocked list unavailable for {user_id}") from exc
        if not profile:
            return []
        return [str(uid) for uid in profile.get(BLOCKED_FIELD) or []]

    async def is_user_blocked(self, user_id: str, target_user_id: str) -> bool:
        return target_user_id in await self.get_blocked_users(user_id)

    async def block_user(self, user_id: str, target_user_id: str) -> None:
        validate_user_id(user_id)
        validate_user_id(target_user_id)
        if user_id == target_user_id:
            raise ValidationError("You cannot block yourself.")
        await self._store.array_union(USERS_COLLECTION, user_id, BLOCKED_FIELD, [target_user_id])

    async def unblock_user(self, user_id: str, target_user_id: str) -> None:
        validate_user_id(user_id)
        await self._store.array_remove(USERS_COLLECTION, user_id, BLOCKED_FIELD, [target_user_id])
