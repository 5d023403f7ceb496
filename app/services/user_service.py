"""
Kindred — Profile operations.

Reading and editing the authenticated user's own profile, and replacing the
profile picture in Google Cloud Storage.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.errors import NotFoundError, ValidationError
from app.models.user import User
from app.utils.storage import delete_file, object_path_from_url, upload_file

logger = structlog.get_logger("kindred.user_service")

_DEFAULT_IMAGE_EXTENSION = "jpg"

# Non-nullable text columns; an explicit null clears them to ""
_BLANK_WHEN_NULL = frozenset({"bio", "affiliation"})


class UserService:
    """Profile read/update and profile-image upload."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    async def get_user(self, user_id: uuid.UUID, db_session: AsyncSession) -> User:
        result = await db_session.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def update_profile(
        self,
        user_id: uuid.UUID,
        updates: dict[str, Any],
        db_session: AsyncSession,
    ) -> User:
        """Apply already-validated profile fields.

        ``updates`` comes from ``ProfileUpdate.model_dump(exclude_unset=True)``
        so only fields the client sent are touched.
        """
        log = logger.bind(user_id=str(user_id))
        user = await self.get_user(user_id, db_session)

        for field, value in updates.items():
            if field in _BLANK_WHEN_NULL and value is None:
                value = ""
            setattr(user, field, value)

        await db_session.flush()
        await db_session.refresh(user)
        log.info("profile_updated", updated_fields=sorted(updates))
        return user

    async def upload_profile_image(
        self,
        user_id: uuid.UUID,
        file_bytes: bytes,
        content_type: str | None,
        filename: str | None,
        db_session: AsyncSession,
    ) -> str:
        """Store a new profile picture and return its public URL.

        The previous picture is deleted from the bucket when it lives there;
        a failed delete is logged and does not fail the upload.
        """
        log = logger.bind(user_id=str(user_id))

        if not file_bytes:
            raise ValidationError("No file uploaded")
        if not content_type or not content_type.startswith("image/"):
            raise ValidationError("Profile image must be an image file")
        if len(file_bytes) > self.settings.MAX_PROFILE_IMAGE_BYTES:
            raise ValidationError(
                f"Profile image must be at most {self.settings.MAX_PROFILE_IMAGE_BYTES} bytes"
            )

        user = await self.get_user(user_id, db_session)
        previous = user.profile_picture

        ext = (
            filename.rsplit(".", 1)[-1].lower()
            if filename and "." in filename
            else _DEFAULT_IMAGE_EXTENSION
        )
        gcs_path = f"{self.settings.GCS_PROFILE_IMAGE_PREFIX}{user_id}/{uuid.uuid4().hex}.{ext}"

        # The storage SDK is blocking
        url = await asyncio.to_thread(upload_file, gcs_path, file_bytes, content_type)
        user.profile_picture = url
        await db_session.flush()
        log.info("profile_image_uploaded", gcs_path=gcs_path, size=len(file_bytes))

        old_path = object_path_from_url(previous) if previous else None
        if old_path:
            try:
                await asyncio.to_thread(delete_file, old_path)
            except Exception:
                log.warning("profile_image_delete_failed", gcs_path=old_path, exc_info=True)

        return url
