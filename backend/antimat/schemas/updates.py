"""App update schemas."""

from datetime import datetime
from uuid import UUID

from antimat.schemas.base import BaseSchema


class UpdateRead(BaseSchema):
    id: UUID
    version: str
    title: str
    description: str
    file_path: str
    file_name: str
    file_size: int
    created_at: datetime


class UpdateList(BaseSchema):
    updates: list[UpdateRead]


class UpdatePayload(BaseSchema):
    update: UpdateRead


class UploadUrlRead(BaseSchema):
    """Presigned POST the admin panel submits the APK to."""

    upload_key: str
    url: str
    fields: dict[str, str]


class UpdateCreate(BaseSchema):
    version: str
    upload_key: str
    title: str | None = None
    description: str | None = None


class UpdateCheck(BaseSchema):
    has_update: bool
    message: str | None = None
    current_version: str | None = None
    latest_version: str | None = None
    title: str | None = None
    description: str | None = None
    download_url: str | None = None
    file_size: int | None = None
    file_name: str | None = None
