"""Health checks and the public APK download."""

from fastapi import APIRouter
from fastapi.responses import RedirectResponse

from antimat.api.deps import SessionFactory
from antimat.db.models import utcnow
from antimat.db.session import check_database
from antimat.errors import NotFoundError
from antimat.services.s3 import CURRENT_RELEASE_KEY, CURRENT_RELEASE_NAME, s3_service

router = APIRouter(tags=["site"])


@router.get("/health")
@router.get("/api/health")
async def health_check(session_factory: SessionFactory) -> dict:
    """Database connectivity is checked on every call."""
    connected = await check_database(session_factory)
    return {
        "success": True,
        "status": "ok",
        "database": "connected" if connected else "disconnected",
        "timestamp": utcnow().isoformat(),
    }


@router.get(f"/download/{CURRENT_RELEASE_NAME}")
async def download_apk() -> RedirectResponse:
    """Redirect to a short-lived storage URL for the current release."""
    if not await s3_service.check_file_exists(CURRENT_RELEASE_KEY):
        raise NotFoundError("APK file not found")
    url = await s3_service.generate_download_url(CURRENT_RELEASE_KEY)
    return RedirectResponse(url, status_code=302)
