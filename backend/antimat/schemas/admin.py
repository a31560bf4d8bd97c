"""Admin panel schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from antimat.schemas.base import BaseSchema, Pagination


class AdminStats(BaseSchema):
    total_users: int
    total_groups: int
    active_premium: int
    total_penalties: int
    total_penalties_amount: int


class AdminUserRead(BaseSchema):
    id: UUID
    email: str
    name: str
    penalty_amount: int
    total_debt: int
    is_premium: bool
    premium_expires_at: datetime | None = None
    fcm_token: str | None = None
    last_seen: datetime | None = None
    last_active_at: datetime
    created_at: datetime


class AdminUserList(BaseSchema):
    users: list[AdminUserRead]
    pagination: Pagination


class AdminUserPayload(BaseSchema):
    user: AdminUserRead


class PremiumGrant(BaseSchema):
    period: str


class DebtReconciliation(BaseSchema):
    previous_debt: int
    total_debt: int


class PushTestRequest(BaseSchema):
    title: str = "Antimat"
    body: str = "Test notification"


class PushTestResult(BaseSchema):
    success_count: int
    failure_count: int
    responses: list[dict[str, Any]]
