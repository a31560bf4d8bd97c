"""Domain services and external integrations."""

from antimat.services import accounts, chat, groups, ledger, presence, releases
from antimat.services.push import push_service
from antimat.services.s3 import s3_service

__all__ = [
    "accounts",
    "chat",
    "groups",
    "ledger",
    "presence",
    "releases",
    "push_service",
    "s3_service",
]
