"""
Authentication Routes

Endpoints:
- POST /api/auth/register - Create an account, returns a bearer token
- POST /api/auth/login - Exchange email + password for a bearer token
- GET /api/auth/me - Current user

Tokens are stateless HS256 JWTs carrying the user id; clients send them as
`Authorization: Bearer <token>` on every other call.
"""

from fastapi import APIRouter, status

from antimat.api.deps import CurrentUser, DbSession, create_access_token
from antimat.schemas.auth import AuthRead, LoginRequest, RegisterRequest
from antimat.schemas.base import Envelope
from antimat.schemas.user import UserPayload, UserRead
from antimat.services import accounts

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=Envelope[AuthRead], status_code=status.HTTP_201_CREATED)
async def register(data: RegisterRequest, db: DbSession) -> Envelope[AuthRead]:
    """Create an account seeded with the default word list."""
    user = await accounts.register(db, data.email, data.password, data.name)
    return Envelope(
        message="Registration successful",
        data=AuthRead(token=create_access_token(user.id), user=UserRead.model_validate(user)),
    )


@router.post("/login", response_model=Envelope[AuthRead])
async def login(data: LoginRequest, db: DbSession) -> Envelope[AuthRead]:
    user = await accounts.authenticate(db, data.email, data.password)
    return Envelope(
        message="Login successful",
        data=AuthRead(token=create_access_token(user.id), user=UserRead.model_validate(user)),
    )


@router.get("/me", response_model=Envelope[UserPayload])
async def get_me(current_user: CurrentUser) -> Envelope[UserPayload]:
    return Envelope(data=UserPayload(user=UserRead.model_validate(current_user)))
