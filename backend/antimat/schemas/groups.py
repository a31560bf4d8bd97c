"""Group schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import Field

from antimat.schemas.base import BaseSchema


class GroupCreate(BaseSchema):
    name: str = Field(..., max_length=255)
    description: str | None = None


class GroupJoin(BaseSchema):
    code: str


class MemberUser(BaseSchema):
    """Public view of a member, with derived presence."""

    id: UUID
    name: str
    avatar: str | None = None
    total_debt: int
    is_premium: bool
    status: Literal["recording", "online", "offline"] = "offline"
    last_seen: datetime | None = None


class MemberRead(BaseSchema):
    user: MemberUser
    role: str
    joined_at: datetime


class GroupSettings(BaseSchema):
    can_members_add_words: bool = False
    can_members_see_all_stats: bool = True
    can_members_forgive_debt: bool = False


class GroupRead(BaseSchema):
    id: UUID
    name: str
    description: str
    invite_code: str
    invite_link: str
    owner_id: UUID
    admin_ids: list[UUID]
    settings: GroupSettings
    members: list[MemberRead]
    created_at: datetime


class GroupPayload(BaseSchema):
    group: GroupRead


class GroupList(BaseSchema):
    groups: list[GroupRead]


class GroupSettingsUpdate(BaseSchema):
    can_members_add_words: bool | None = None
    can_members_see_all_stats: bool | None = None
    can_members_forgive_debt: bool | None = None


class RoleUpdate(BaseSchema):
    role: Literal["admin", "member"]


class OwnershipTransfer(BaseSchema):
    user_id: UUID
