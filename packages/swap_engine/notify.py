"""
Notifications - User-facing messages emitted by the engine

The engine only needs ``notify(user_id, text)``. Delivery failures are
logged and dropped: a lost message must never fail a trade.
"""
import logging
from typing import List, Optional, Protocol, Tuple

import httpx

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    async def notify(self, user_id: int, text: str) -> None:
        ...


class LogNotifier:
    """Writes notifications to the log (CLI / dry setups)"""

    def __init__(self):
        self.sent: List[Tuple[int, str]] = []

    async def notify(self, user_id: int, text: str) -> None:
        self.sent.append((user_id, text))
        logger.info(f"[notify user={user_id}] {text}")


class TelegramNotifier:
    """
    Telegram Bot API sender; the user id is the chat id

    Usage:
        async with TelegramNotifier(token) as tg:
            await tg.notify(123456, "transaction sent")
    """

    BASE_URL = "https://api.telegram.org"

    def __init__(self, bot_token: str, timeout: float = 10.0):
        self.bot_token = bot_token
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        await self._init_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _init_client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"{self.BASE_URL}/bot{self.bot_token}",
                timeout=httpx.Timeout(self.timeout),
            )

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def notify(self, user_id: int, text: str) -> None:
        await self._init_client()
        response = await self._client.post(
            "/sendMessage",
            json={"chat_id": user_id, "text": text, "disable_web_page_preview": True},
        )
        if response.status_code >= 400:
            raise httpx.HTTPStatusError(
                f"Telegram API error ({response.status_code}): {response.text[:200]}",
                request=response.request,
                response=response,
            )


async def safe_notify(sink: Optional[NotificationSink], user_id: int, text: str) -> bool:
    """Send through ``sink``; returns False (and logs) instead of raising"""
    if sink is None:
        return False
    try:
        await sink.notify(user_id, text)
        return True
    except Exception as e:
        logger.warning(f"Notification to user {user_id} failed: {e}")
        return False
