"""Base schema configuration."""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class BaseSchema(BaseModel):
    """
    Base schema with common configuration.

    Wire names are camelCase (the mobile client and the website both expect
    them); Python attributes stay snake_case and are accepted on input too.
    """

    model_config = ConfigDict(
        from_attributes=True,  # Enable ORM mode
        str_strip_whitespace=True,
        validate_assignment=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Envelope(BaseModel, Generic[T]):
    """Response envelope shared by every endpoint."""

    success: bool = True
    message: str | None = None
    data: T | None = None


class Pagination(BaseSchema):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=(total + limit - 1) // limit if limit else 0)
