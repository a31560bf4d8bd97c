"""
Admin panel routes.

Everything except /login requires an admin-scope token (see deps.require_admin).
"""

import logging
import secrets
import time
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from antimat.api.deps import DbSession, create_admin_token, require_admin
from antimat.config import get_settings
from antimat.errors import AuthError, InternalError
from antimat.schemas.admin import (
    AdminStats,
    AdminUserList,
    AdminUserPayload,
    AdminUserRead,
    DebtReconciliation,
    PremiumGrant,
    PushTestRequest,
    PushTestResult,
)
from antimat.schemas.auth import AdminLoginRequest, AdminTokenRead
from antimat.schemas.base import Envelope, Pagination
from antimat.schemas.updates import UpdateCreate, UpdateList, UpdatePayload, UpdateRead, UploadUrlRead
from antimat.services import accounts, ledger, releases
from antimat.services.push import push_service
from antimat.services.s3 import s3_service

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/admin", tags=["admin"])
protected = APIRouter(dependencies=[Depends(require_admin)])


@router.post("/login", response_model=Envelope[AdminTokenRead])
async def admin_login(data: AdminLoginRequest) -> Envelope[AdminTokenRead]:
    if not settings.admin_password:
        raise InternalError("Admin password is not configured")
    if not data.password or not secrets.compare_digest(data.password, settings.admin_password):
        raise AuthError("Invalid password")
    return Envelope(message="Login successful", data=AdminTokenRead(token=create_admin_token()))


# =============================================================================
# USERS
# =============================================================================


@protected.get("/stats", response_model=Envelope[AdminStats])
async def get_stats(db: DbSession) -> Envelope[AdminStats]:
    return Envelope(data=AdminStats(**await accounts.admin_stats(db)))


@protected.get("/users", response_model=Envelope[AdminUserList])
async def list_users(
    db: DbSession,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    search: str | None = None,
) -> Envelope[AdminUserList]:
    users, total = await accounts.list_users(db, page=page, limit=limit, search=search)
    return Envelope(
        data=AdminUserList(
            users=[AdminUserRead.model_validate(u) for u in users],
            pagination=Pagination.build(page, limit, total),
        )
    )


@protected.post("/users/{user_id}/premium", response_model=Envelope[AdminUserPayload])
async def grant_premium(user_id: UUID, data: PremiumGrant, db: DbSession) -> Envelope[AdminUserPayload]:
    user = await accounts.grant_premium(db, user_id, data.period)
    return Envelope(
        message=f"Premium granted for {data.period}",
        data=AdminUserPayload(user=AdminUserRead.model_validate(user)),
    )


@protected.delete("/users/{user_id}/premium", response_model=Envelope[AdminUserPayload])
async def revoke_premium(user_id: UUID, db: DbSession) -> Envelope[AdminUserPayload]:
    user = await accounts.revoke_premium(db, user_id)
    return Envelope(message="Premium removed", data=AdminUserPayload(user=AdminUserRead.model_validate(user)))


@protected.post("/users/{user_id}/clear-penalties", response_model=Envelope)
async def clear_penalties(user_id: UUID, db: DbSession) -> Envelope:
    await ledger.clear_user_penalties(db, user_id)
    return Envelope(message="All penalties and debt cleared")


@protected.post("/users/{user_id}/reconcile-debt", response_model=Envelope[DebtReconciliation])
async def reconcile_debt(user_id: UUID, db: DbSession) -> Envelope[DebtReconciliation]:
    """Recompute total debt from the user's unforgiven penalties."""
    previous, current = await ledger.reconcile_debt(db, user_id)
    return Envelope(data=DebtReconciliation(previous_debt=previous, total_debt=current))


@protected.delete("/users/{user_id}", response_model=Envelope)
async def delete_user(user_id: UUID, db: DbSession) -> Envelope:
    """Delete an account with its owned groups, penalties and messages."""
    await accounts.delete_account(db, user_id)
    return Envelope(message="Account deleted")


# =============================================================================
# PUSH
# =============================================================================


@protected.post("/push/test", response_model=Envelope[PushTestResult])
async def send_test_push(
    db: DbSession,
    data: PushTestRequest | None = None,
) -> Envelope[PushTestResult]:
    """Send a test notification to every user with a registered token."""
    if not push_service.is_ready():
        raise InternalError("Push notifications are not configured")

    data = data or PushTestRequest()
    tokens = await accounts.push_tokens(db)
    if not tokens:
        return Envelope(success=False, message="No push tokens available")

    result = await push_service.send_to_tokens(
        tokens,
        notification={"title": data.title, "body": data.body},
        data={"type": "test", "ts": str(int(time.time() * 1000))},
    )
    return Envelope(
        data=PushTestResult(
            success_count=result.success_count,
            failure_count=result.failure_count,
            responses=result.responses,
        )
    )


# =============================================================================
# APP UPDATES
# =============================================================================


@protected.get("/updates", response_model=Envelope[UpdateList])
async def list_updates(db: DbSession) -> Envelope[UpdateList]:
    updates = await releases.list_updates(db)
    return Envelope(data=UpdateList(updates=[UpdateRead.model_validate(u) for u in updates]))


@protected.post("/updates/upload-url", response_model=Envelope[UploadUrlRead])
async def get_upload_url() -> Envelope[UploadUrlRead]:
    """
    Presigned POST for uploading an APK straight to storage.

    The admin panel submits the file there, then calls POST /updates with
    the returned uploadKey.
    """
    key = s3_service.new_upload_key()
    presigned = await s3_service.generate_presigned_upload(key)
    return Envelope(data=UploadUrlRead(upload_key=key, url=presigned["url"], fields=presigned["fields"]))


@protected.post("/updates", response_model=Envelope[UpdatePayload], status_code=status.HTTP_201_CREATED)
async def create_update(data: UpdateCreate, db: DbSession) -> Envelope[UpdatePayload]:
    update = await releases.register_update(
        db, data.version, data.upload_key, title=data.title, description=data.description
    )
    return Envelope(message="Update uploaded", data=UpdatePayload(update=UpdateRead.model_validate(update)))


@protected.delete("/updates/{update_id}", response_model=Envelope)
async def delete_update(update_id: UUID, db: DbSession) -> Envelope:
    await releases.delete_update(db, update_id)
    return Envelope(message="Update deleted")


router.include_router(protected)
