from __future__ import annotations

import asyncio

from loguru import logger

from streettalk.application.dto import RateLimitBannerDTO
from streettalk.constants import (
    COMMENTS_COLLECTION,
    MSG_REPORT_FAILED,
    POSTS_COLLECTION,
    REPORTS_COLLECTION,
    USERS_COLLECTION,
)
from streettalk.domain.errors import NotFoundError, QueryFailure, ValidationError
from streettalk.domain.models import ActionType, Document, MediaType, ReportReason, ReportTarget, UserProfile
from streettalk.domain.validators import (
    MAX_COMMENT_LENGTH,
    MAX_POST_LENGTH,
    MAX_REPORT_DESCRIPTION_LENGTH,
    sanitize_user_content,
    validate_content_for_submission,
    validate_text,
    validate_user_id,
    validate_username,
)
from streettalk.infrastructure.document_store import SERVER_TIMESTAMP, DocumentStore
from streettalk.infrastructure.rate_limiter import RateLimiter


class PostService:
    """
    Post writes. Creation is validated first, then rate limited:
    the quota is only consumed once the post is stored.
    """

    def __init__(
        self,
        *,
        store: DocumentStore,
        rate_limiter: RateLimiter,
        strict_content_filter: bool = False,
    ) -> None:
        self._store = store
        self._limiter = rate_limiter
        self._strict = strict_content_filter

    async def create_post(
        self,
        *,
        user_id: str,
        username: str,
        content: str,
        media_url: str | None = None,
        media_type: MediaType | None = None,
        media_thumbnail: str | None = None,
    ) -> str:
        validate_user_id(user_id)
        text = validate_text(content, max_length=MAX_POST_LENGTH, what="Post")
        if self._strict:
            validate_content_for_submission(text)

        data: dict = {
            "content": text,
            "userId": user_id,
            "username": username,
            "createdAt": SERVER_TIMESTAMP,
            "likes": 0,
            "commentsCount": 0,
        }
        if media_url:
            data["mediaUrl"] = media_url
            data["mediaType"] = (media_type or MediaType.IMAGE).value
            if media_thumbnail:
                data["mediaThumbnail"] = media_thumbnail

        post_id = await self._limiter.with_rate_limit(
            user_id,
            ActionType.POST_CREATION,
            lambda: self._store.add(POSTS_COLLECTION, data),
        )
        logger.info("Post created: {} by {}", post_id, user_id)
        return post_id

    async def get_post(self, post_id: str) -> Document | None:
        data = await self._store.get(POSTS_COLLECTION, post_id)
        return Document(doc_id=post_id, data=data) if data is not None else None

    async def update_post(self, post_id: str, content: str) -> None:
        text = validate_text(content, max_length=MAX_POST_LENGTH, what="Post")
        if self._strict:
            validate_content_for_submission(text)
        await self._store.update(POSTS_COLLECTION, post_id, {"content": text, "updatedAt": SERVER_TIMESTAMP})

    async def delete_post(self, post_id: str) -> None:
        # comments go before the post itself
        comment_ids = await self._store.list_ids(COMMENTS_COLLECTION, "postId", post_id)
        await asyncio.gather(*(self._store.delete(COMMENTS_COLLECTION, cid) for cid in comment_ids))
        await self._store.delete(POSTS_COLLECTION, post_id)
        logger.info("Post deleted: {} ({} comments)", post_id, len(comment_ids))


class CommentService:
    def __init__(
        self,
        *,
        store: DocumentStore,
        rate_limiter: RateLimiter,
        strict_content_filter: bool = False,
    ) -> None:
        self._store = store
        self._limiter = rate_limiter
        self._strict = strict_content_filter

    async def create_comment(self, *, post_id: str, user_id: str, username: str, content: str) -> str:
        validate_user_id(user_id)
        if not post_id:
            raise ValidationError("Comment must belong to a post.")
        text = validate_text(content, max_length=MAX_COMMENT_LENGTH, what="Comment")
        if self._strict:
            validate_content_for_submission(text)

        async def _write() -> str:
            if await self._store.get(POSTS_COLLECTION, post_id) is None:
                raise NotFoundError("This post no longer exists.")
            comment_id = await self._store.add(
                COMMENTS_COLLECTION,
                {
                    "postId": post_id,
                    "content": text,
                    "userId": user_id,
                    "username": username,
                    "createdAt": SERVER_TIMESTAMP,
                },
            )
            await self._store.increment(POSTS_COLLECTION, post_id, "commentsCount", 1)
            return comment_id

        return await self._limiter.with_rate_limit(user_id, ActionType.COMMENT_CREATION, _write)

    async def delete_comment(self, comment_id: str, post_id: str) -> None:
        await self._store.delete(COMMENTS_COLLECTION, comment_id)
        await self._store.increment(POSTS_COLLECTION, post_id, "commentsCount", -1)


class UserProfileService:
    """Profiles live on users/{uid}, next to the block list. Usernames are stored lowercase."""

    def __init__(self, *, store: DocumentStore) -> None:
        self._store = store

    async def create_user_profile(self, *, uid: str, email: str | None, username: str) -> UserProfile:
        validate_user_id(uid)
        name = validate_username(username)
        if not await self.is_username_available(name):
            raise ValidationError("This username is already taken.")

        await self._store.set(
            USERS_COLLECTION,
            uid,
            {"uid": uid, "email": email, "username": name, "createdAt": SERVER_TIMESTAMP},
            merge=True,
        )
        logger.info("User profile created: {} ({})", uid, name)
        return await self.get_user_profile(uid)

    async def get_user_profile(self, uid: str) -> UserProfile | None:
        data = await self._store.get(USERS_COLLECTION, uid)
        return UserProfile.from_data(uid, data) if data is not None else None

    async def is_username_available(self, username: str) -> bool:
        return not await self._store.list_ids(USERS_COLLECTION, "username", username.lower())

    async def get_user_by_username(self, username: str) -> UserProfile | None:
        ids = await self._store.list_ids(USERS_COLLECTION, "username", username.lower())
        if not ids:
            return None
        return await self.get_user_profile(ids[0])


class ReportService:
    def __init__(self, *, store: DocumentStore) -> None:
        self._store = store

    async def report_content(
        self,
        *,
        reporter_user_id: str,
        reporter_username: str,
        target_type: ReportTarget,
        target_id: str,
        target_user_id: str,
        target_username: str,
        reason: ReportReason,
        description: str | None = None,
    ) -> str:
        validate_user_id(reporter_user_id)
        if description is not None:
            description = sanitize_user_content(description)[:MAX_REPORT_DESCRIPTION_LENGTH] or None

        try:
            return await self._store.add(
                REPORTS_COLLECTION,
                {
                    "reporterUserId": reporter_user_id,
                    "reporterUsername": reporter_username,
                    "targetType": target_type.value,
                    "targetId": target_id,
                    "targetUserId": target_user_id,
                    "targetUsername": target_username,
                    "reason": reason.value,
                    "description": description,
                    "createdAt": SERVER_TIMESTAMP,
                    "status": "pending",
                },
            )
        except QueryFailure as exc:
            logger.error("Report submission failed: {} {}", target_type.value, target_id)
            raise QueryFailure(MSG_REPORT_FAILED) from exc


async def rate_limit_banner(
    limiter: RateLimiter,
    user_id: str,
    action: ActionType,
    *,
    show_warning: bool = True,
) -> RateLimitBannerDTO | None:
    """Banner for the compose screen; None while usage is zero and not near the limit."""
    status = await limiter.get_rate_limit_status(user_id, action)
    if not show_warning or (not status.near_limit and status.current == 0):
        return None
    return RateLimitBannerDTO.from_status(action, status)
