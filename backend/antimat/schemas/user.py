"""User schemas."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import Field, field_validator

from antimat.schemas.base import BaseSchema


class UserRead(BaseSchema):
    """The account as its owner sees it."""

    id: UUID
    email: str
    name: str
    avatar: str | None = None
    penalty_amount: int
    penalty_amount_updated_at: datetime
    total_debt: int
    is_premium: bool
    premium_expires_at: datetime | None = None
    continuous_recording: bool
    banned_words: list[str] = Field(default_factory=list)
    settings: dict[str, Any] = Field(default_factory=dict)
    last_seen: datetime | None = None
    is_recording: bool = False
    created_at: datetime

    @field_validator("banned_words", mode="before")
    @classmethod
    def _word_strings(cls, value):
        return [getattr(w, "word", w) for w in value or []]


class UserPayload(BaseSchema):
    user: UserRead


class ProfileUpdate(BaseSchema):
    name: str | None = Field(None, max_length=255)
    avatar: str | None = None


class SettingsUpdate(BaseSchema):
    penalty_amount: int | None = None
    theme: Literal["dark", "light"] | None = None
    sound_enabled: bool | None = None
    notifications_enabled: bool | None = None


class SettingsRead(BaseSchema):
    penalty_amount: int
    penalty_amount_updated_at: datetime
    settings: dict[str, Any]


class PushTokenUpdate(BaseSchema):
    fcm_token: str = Field(..., min_length=1)


class PingRequest(BaseSchema):
    """Heartbeat. Omitting recording keeps the stored flag."""

    recording: bool | None = None


class PingRead(BaseSchema):
    status: Literal["recording", "online", "offline"]
