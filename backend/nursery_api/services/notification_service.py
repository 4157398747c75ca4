"""
Notification Service

Best-effort push notifications for order events, delivered through the
Expo push API.

Nothing here is allowed to fail a checkout, webhook or status update:
callers schedule notifications as background work and every error is
logged and swallowed.
"""
import re
from typing import Any, Callable, Dict, List, Optional
import logging

import requests
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from ..config import settings
from ..db.models import PushTokenModel
from .order_status_service import status_message

logger = logging.getLogger(__name__)

# Expo accepts at most 100 messages per request
EXPO_CHUNK_SIZE = 100

_EXPO_TOKEN_PATTERN = re.compile(r"^Expo(nent)?PushToken\[.+\]$")


def is_expo_push_token(token: str) -> bool:
    """True for ExponentPushToken[...] / ExpoPushToken[...] tokens."""
    return bool(_EXPO_TOKEN_PATTERN.match(token or ""))


class ExpoPushDispatcher:
    """
    Sends push notifications to all of a user's registered devices.

    Args:
        session_factory: Callable returning an AsyncSession context manager
            (push tokens are read in the dispatcher's own session because it
            runs after the request's session is closed)
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        push_url: str = settings.expo_push_url,
        access_token: Optional[str] = settings.expo_access_token,
        timeout_seconds: float = settings.push_timeout_seconds
    ):
        self._session_factory = session_factory
        self._push_url = push_url
        self._access_token = access_token
        self._timeout = timeout_seconds

    async def notify(
        self,
        user_id: str,
        title: str,
        body: str,
        metadata: Optional[Dict[str, str]] = None
    ) -> Dict[str, int]:
        """
        Push a notification to every device of a user.

        Returns:
            {"sent": int, "failed": int}
        """
        async with self._session_factory() as db:
            result = await db.execute(
                select(PushTokenModel.token).where(PushTokenModel.user_id == user_id)
            )
            tokens = [t for t in result.scalars().all() if is_expo_push_token(t)]

        if not tokens:
            logger.debug(f"No push tokens for user {user_id}")
            return {"sent": 0, "failed": 0}

        messages = [
            {
                "to": token,
                "sound": "default",
                "title": title,
                "body": body,
                "data": metadata or {},
            }
            for token in tokens
        ]

        sent = 0
        failed = 0
        for start in range(0, len(messages), EXPO_CHUNK_SIZE):
            chunk = messages[start:start + EXPO_CHUNK_SIZE]
            try:
                tickets = await run_in_threadpool(self._post_chunk, chunk)
            except requests.exceptions.RequestException as e:
                logger.error(f"Push notification error for user {user_id}: {e}")
                failed += len(chunk)
                continue

            for ticket in tickets:
                if ticket.get("status") == "ok":
                    sent += 1
                else:
                    failed += 1

        logger.info(f"Push to user {user_id}: sent={sent}, failed={failed}")
        return {"sent": sent, "failed": failed}

    def _post_chunk(self, chunk: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"

        response = requests.post(self._push_url, json=chunk, headers=headers, timeout=self._timeout)
        response.raise_for_status()
        return response.json().get("data", [])


def order_notification_title(order_id: str) -> str:
    """Title shown on order pushes, e.g. "Order #A1B2C3"."""
    return f"Order #{order_id[-6:].upper()}"


async def send_order_status_notification(
    dispatcher: Any,
    user_id: str,
    order_id: str,
    status: str
) -> None:
    """
    Tell the customer their order moved to a new status.

    Fire-and-forget: never raises.
    """
    try:
        await dispatcher.notify(
            user_id,
            order_notification_title(order_id),
            status_message(status),
            {"type": "order_update", "order_id": order_id, "status": status},
        )
    except Exception as e:
        logger.error(f"Order notification failed for {order_id} ({status}): {e}", exc_info=True)


_dispatcher: Optional[ExpoPushDispatcher] = None


def get_notification_dispatcher() -> ExpoPushDispatcher:
    """FastAPI dependency returning the process-wide dispatcher."""
    global _dispatcher
    if _dispatcher is None:
        from ..db.init_db import AsyncSessionLocal
        _dispatcher = ExpoPushDispatcher(AsyncSessionLocal)
    return _dispatcher
