"""
Firebase Cloud Messaging (FCM) service for push notifications.

The Admin SDK is synchronous, so sends run in a worker thread. Callers in the
request path should go through `schedule()`: fan-out runs as a detached task
and its failures are logged, never raised to the request that triggered it.
"""

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any

import firebase_admin
from firebase_admin import credentials, messaging

from antimat.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class PushResult:
    """Per-token outcome of a multicast send."""

    success_count: int = 0
    failure_count: int = 0
    responses: list[dict[str, Any]] = field(default_factory=list)


class PushService:
    """Thin wrapper over firebase_admin.messaging."""

    def __init__(self):
        self._app: firebase_admin.App | None = None
        self._initialized = False
        self._tasks: set[asyncio.Task] = set()

    def _credential(self) -> credentials.Base | None:
        if settings.firebase_credentials_path:
            return credentials.Certificate(settings.firebase_credentials_path)
        if settings.firebase_project_id and settings.firebase_client_email and settings.firebase_private_key:
            return credentials.Certificate(
                {
                    "type": "service_account",
                    "project_id": settings.firebase_project_id,
                    "client_email": settings.firebase_client_email,
                    # Keys pasted into env files usually carry literal "\n"
                    "private_key": settings.firebase_private_key.replace("\\n", "\n"),
                    "private_key_id": settings.firebase_private_key_id or "",
                    "client_id": settings.firebase_client_id or "",
                    "token_uri": "https://oauth2.googleapis.com/token",
                }
            )
        return None

    def initialize(self) -> None:
        """Initialize the Firebase app once. Missing credentials disable push."""
        if self._initialized:
            return
        self._initialized = True
        try:
            cred = self._credential()
            if cred is None:
                logger.warning("Firebase credentials are not configured; push notifications disabled")
                return
            self._app = firebase_admin.initialize_app(cred, name="antimat")
            logger.info("Firebase Admin SDK initialized")
        except Exception:
            logger.exception("Failed to initialize Firebase Admin SDK")
            self._app = None

    def is_ready(self) -> bool:
        self.initialize()
        return self._app is not None

    def _send_multicast(
        self,
        tokens: list[str],
        notification: dict[str, str] | None,
        data: dict[str, Any] | None,
    ) -> PushResult:
        message = messaging.MulticastMessage(
            tokens=tokens,
            notification=messaging.Notification(**notification) if notification else None,
            # FCM data payload values must be strings
            data={k: "" if v is None else str(v) for k, v in (data or {}).items()},
        )
        batch = messaging.send_each_for_multicast(message, app=self._app)
        return PushResult(
            success_count=batch.success_count,
            failure_count=batch.failure_count,
            responses=[
                {"success": r.success, "error": str(r.exception) if r.exception else None}
                for r in batch.responses
            ],
        )

    async def send_to_tokens(
        self,
        tokens: list[str],
        notification: dict[str, str] | None = None,
        data: dict[str, Any] | None = None,
    ) -> PushResult | None:
        """
        Send one notification/data payload to many device tokens.

        Returns None when push is not configured or there is nothing to send.
        """
        tokens = [t for t in tokens if t]
        if not tokens or not self.is_ready():
            return None
        return await asyncio.to_thread(self._send_multicast, tokens, notification, data)

    def schedule(self, coro: Coroutine[Any, Any, Any], *, label: str) -> asyncio.Task:
        """Run a fan-out coroutine detached from the current request."""
        task = asyncio.create_task(self._guard(coro, label))
        # Keep a reference until done so the task is not garbage collected
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    async def _guard(coro: Coroutine[Any, Any, Any], label: str) -> None:
        try:
            await coro
        except Exception as e:
            logger.warning("Push fan-out %s failed: %s", label, e)

    async def drain(self) -> None:
        """Wait for in-flight fan-out tasks (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


# Singleton instance
push_service = PushService()
