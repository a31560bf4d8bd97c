"""API routes package."""

from antimat.api.routes import (
    admin,
    auth,
    groups,
    penalties,
    site,
    updates,
    users,
    words,
)

__all__ = [
    "admin",
    "auth",
    "groups",
    "penalties",
    "site",
    "updates",
    "users",
    "words",
]
