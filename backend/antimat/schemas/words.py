"""Banned word schemas."""

from antimat.schemas.base import BaseSchema


class WordCreate(BaseSchema):
    word: str


class WordList(BaseSchema):
    words: list[str]
    limit: int
    count: int
    is_premium: bool
