"""APK release records and version comparison."""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from antimat.config import get_settings
from antimat.db.models import AppUpdate
from antimat.errors import ConflictError, NotFoundError, ValidationError
from antimat.services.s3 import CURRENT_RELEASE_NAME, UPLOAD_PREFIX, StorageError, s3_service

logger = logging.getLogger(__name__)
settings = get_settings()

DEFAULT_TITLE = "Update available"
DEFAULT_DESCRIPTION = "A new version of the app is available for download"
HISTORY_LIMIT = 50


def _parts(version: str) -> list[int]:
    parts = []
    for chunk in version.strip().split("."):
        try:
            parts.append(int(chunk))
        except ValueError:
            raise ValidationError(f"Invalid version: {version}")
    return parts


def compare_versions(a: str, b: str) -> int:
    """
    Compare dot-separated numeric versions.

    Missing trailing components count as zero, so "1.0" == "1.0.0".
    Returns 1 if a > b, -1 if a < b, else 0.
    """
    left, right = _parts(a), _parts(b)
    width = max(len(left), len(right))
    left += [0] * (width - len(left))
    right += [0] * (width - len(right))
    for x, y in zip(left, right):
        if x > y:
            return 1
        if x < y:
            return -1
    return 0


def download_url() -> str:
    return f"{settings.site_url.rstrip('/')}/download/{CURRENT_RELEASE_NAME}"


async def latest_update(db: AsyncSession) -> AppUpdate | None:
    result = await db.execute(select(AppUpdate).order_by(AppUpdate.created_at.desc()).limit(1))
    return result.scalar_one_or_none()


async def list_updates(db: AsyncSession) -> list[AppUpdate]:
    result = await db.execute(select(AppUpdate).order_by(AppUpdate.created_at.desc()).limit(HISTORY_LIMIT))
    return list(result.scalars())


async def check_for_update(db: AsyncSession, current_version: str | None) -> dict:
    if not current_version or not current_version.strip():
        raise ValidationError("Current version is required")
    current_version = current_version.strip()

    latest = await latest_update(db)
    if latest is None:
        return {"has_update": False, "message": "No updates found"}

    if compare_versions(latest.version, current_version) <= 0:
        return {
            "has_update": False,
            "current_version": current_version,
            "latest_version": latest.version,
        }

    return {
        "has_update": True,
        "current_version": current_version,
        "latest_version": latest.version,
        "title": latest.title or DEFAULT_TITLE,
        "description": latest.description or DEFAULT_DESCRIPTION,
        "download_url": download_url(),
        "file_size": latest.file_size,
        "file_name": latest.file_name,
    }


async def register_update(
    db: AsyncSession,
    version: str,
    upload_key: str,
    title: str | None = None,
    description: str | None = None,
) -> AppUpdate:
    """
    Publish an artifact uploaded through a presigned POST.

    The upload is promoted to the fixed current-release key before the row
    is written.
    """
    version = (version or "").strip()
    if not version:
        raise ValidationError("Version is required")
    _parts(version)
    if not upload_key or not upload_key.startswith(UPLOAD_PREFIX):
        raise ValidationError("APK file is required")

    existing = await db.execute(select(AppUpdate.id).where(AppUpdate.version == version))
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("This version already exists")

    size = await s3_service.object_size(upload_key)
    if size is None:
        raise ValidationError("Uploaded file not found")

    key = await s3_service.promote_release(upload_key)
    update = AppUpdate(
        version=version,
        title=(title or "").strip(),
        description=(description or "").strip(),
        file_path=key,
        file_name=CURRENT_RELEASE_NAME,
        file_size=size,
    )
    db.add(update)
    await db.flush()
    logger.info("Published release %s (%d bytes)", version, size)
    return update


async def delete_update(db: AsyncSession, update_id: UUID) -> None:
    """
    Remove a release record.

    Every record shares the current-release key, so the artifact is deleted
    (best-effort) only with the last record. While older records remain the
    file stays and keeps serving the most recently uploaded build until a
    new one is published.
    """
    update = await db.get(AppUpdate, update_id)
    if update is None:
        raise NotFoundError("Update not found")

    await db.delete(update)
    await db.flush()

    if await latest_update(db) is None:
        try:
            await s3_service.delete_file(update.file_path)
        except StorageError as e:
            logger.error("Failed to delete release artifact %s: %s", update.file_path, e)
