"""
Antimat FastAPI Application Entry Point.

Run with: uvicorn antimat.main:app --reload
"""

import asyncio
import contextlib
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from antimat.api.routes import admin, auth, groups, penalties, site, updates, users, words
from antimat.config import get_settings, sanitize_error
from antimat.db.session import engine, wait_for_database
from antimat.errors import AppError
from antimat.services.push import push_service

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown."""
    # Startup: serve immediately, keep retrying the database in the background
    push_service.initialize()
    db_task = asyncio.create_task(wait_for_database())
    yield
    # Shutdown
    db_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await db_task
    await push_service.drain()
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Profanity tracking: penalties, groups, chat and app updates",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        "%s %s %s -> %d (%.0fms)",
        client_ip(request),
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


# =============================================================================
# ERROR HANDLERS
# =============================================================================


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return error_response(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == 404 and message == "Not Found":
        message = "Endpoint not found"
    return error_response(exc.status_code, message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if not errors:
        return error_response(400, "Invalid request")
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = first.get("msg", "Invalid request")
    return error_response(400, f"{field}: {message}" if field else message)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, sanitize_error(exc, generic_message="Internal server error"))


# Include routers
app.include_router(auth.router, prefix="/api")
app.include_router(users.router, prefix="/api")
app.include_router(words.router, prefix="/api")
app.include_router(penalties.router, prefix="/api")
app.include_router(groups.router, prefix="/api")
app.include_router(admin.router, prefix="/api")
app.include_router(updates.router, prefix="/api")
app.include_router(site.router)
