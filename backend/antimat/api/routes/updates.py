"""Public version check for the Android client."""

from typing import Annotated

from fastapi import APIRouter, Query

from antimat.api.deps import DbSession
from antimat.schemas.base import Envelope
from antimat.schemas.updates import UpdateCheck
from antimat.services import releases

router = APIRouter(prefix="/updates", tags=["updates"])


@router.get("/check", response_model=Envelope[UpdateCheck])
async def check_update(
    db: DbSession,
    current_version: Annotated[str | None, Query(alias="currentVersion")] = None,
) -> Envelope[UpdateCheck]:
    """Compare the client's version with the newest uploaded release."""
    result = await releases.check_for_update(db, current_version)
    return Envelope(data=UpdateCheck(**result))
