"""Authentication schemas."""

from pydantic import EmailStr

from antimat.schemas.base import BaseSchema
from antimat.schemas.user import UserRead


class RegisterRequest(BaseSchema):
    email: EmailStr
    password: str
    name: str


class LoginRequest(BaseSchema):
    email: str
    password: str


class AuthRead(BaseSchema):
    """Issued bearer token plus the account it belongs to."""

    token: str
    user: UserRead


class AdminLoginRequest(BaseSchema):
    password: str


class AdminTokenRead(BaseSchema):
    token: str
