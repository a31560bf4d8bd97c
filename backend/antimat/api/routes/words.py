"""Banned word routes."""

from fastapi import APIRouter, status

from antimat.api.deps import CurrentUser, DbSession
from antimat.schemas.base import Envelope
from antimat.schemas.words import WordCreate, WordList
from antimat.services import accounts

router = APIRouter(prefix="/words", tags=["words"])


@router.get("", response_model=Envelope[WordList])
async def list_words(current_user: CurrentUser) -> Envelope[WordList]:
    return Envelope(data=WordList(**accounts.word_summary(current_user)))


@router.post("", response_model=Envelope[WordList], status_code=status.HTTP_201_CREATED)
async def add_word(data: WordCreate, current_user: CurrentUser, db: DbSession) -> Envelope[WordList]:
    """Add a word; capped at 10, or 30 with Premium."""
    user = await accounts.add_word(db, current_user, data.word)
    return Envelope(message="Word added", data=WordList(**accounts.word_summary(user)))


@router.delete("/{word}", response_model=Envelope[WordList])
async def remove_word(word: str, current_user: CurrentUser, db: DbSession) -> Envelope[WordList]:
    user = await accounts.remove_word(db, current_user, word)
    return Envelope(message="Word removed", data=WordList(**accounts.word_summary(user)))
