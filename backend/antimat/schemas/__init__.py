"""Pydantic schemas for API request/response validation."""

from antimat.schemas.base import BaseSchema, Envelope, Pagination
from antimat.schemas.user import UserRead, UserPayload, ProfileUpdate, SettingsUpdate
from antimat.schemas.auth import AuthRead, LoginRequest, RegisterRequest
from antimat.schemas.words import WordCreate, WordList
from antimat.schemas.penalties import PenaltyCreate, PenaltyRead, UserStats, GroupStats
from antimat.schemas.groups import GroupCreate, GroupRead, GroupSettings
from antimat.schemas.chat import ChatMessageRead, ChatMessageRequest, ChatPoll
from antimat.schemas.updates import UpdateCheck, UpdateCreate, UpdateRead

__all__ = [
    # Base
    "BaseSchema",
    "Envelope",
    "Pagination",
    # User
    "UserRead",
    "UserPayload",
    "ProfileUpdate",
    "SettingsUpdate",
    # Auth
    "AuthRead",
    "LoginRequest",
    "RegisterRequest",
    # Words
    "WordCreate",
    "WordList",
    # Penalties
    "PenaltyCreate",
    "PenaltyRead",
    "UserStats",
    "GroupStats",
    # Groups
    "GroupCreate",
    "GroupRead",
    "GroupSettings",
    # Chat
    "ChatMessageRead",
    "ChatMessageRequest",
    "ChatPoll",
    # Updates
    "UpdateCheck",
    "UpdateCreate",
    "UpdateRead",
]
