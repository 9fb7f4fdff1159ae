"""
Notification Service

Best-effort delivery of order notifications to a Telegram chat.

Deliveries run as detached asyncio tasks owned by NotificationDispatcher:
callers never await them, and a failed or slow delivery is logged without
affecting the transaction that triggered it.
"""
import asyncio
from typing import Optional, Protocol, Set
import logging

import httpx
from pydantic import SecretStr

from ..exceptions import NotificationError
from ..models.products import ProductRecord
from ..models.transactions import TransactionRecord, UserRecord

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    """Anything that can deliver a plain-text message."""

    async def send(self, text: str) -> None:
        ...

    async def aclose(self) -> None:
        ...


class LoggingSink:
    """Sink used when Telegram is not configured; writes messages to the log."""

    async def send(self, text: str) -> None:
        logger.info(f"Notification (not delivered, Telegram disabled):\n{text}")

    async def aclose(self) -> None:
        return None


class TelegramSink:
    """
    Sends messages through the Telegram Bot API sendMessage method.

    Args:
        bot_token: Bot token, kept out of logs
        chat_id: Target chat
        api_url: Bot API base URL
        timeout_seconds: Total timeout per request
        client: Optional preconfigured httpx.AsyncClient (tests)
    """

    def __init__(
        self,
        bot_token: SecretStr,
        chat_id: str,
        api_url: str = "https://api.telegram.org",
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._api_url = api_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

    async def send(self, text: str) -> None:
        url = f"{self._api_url}/bot{self._bot_token.get_secret_value()}/sendMessage"

        # httpx errors embed the request URL, which contains the bot token
        try:
            response = await self._client.post(url, json={"chat_id": self._chat_id, "text": text})
        except httpx.RequestError as e:
            raise NotificationError(f"Telegram request failed: {type(e).__name__}") from None

        if response.is_error:
            raise NotificationError(f"Telegram responded with HTTP {response.status_code}")

        logger.debug(f"Telegram message delivered to chat {self._chat_id}")

    async def aclose(self) -> None:
        await self._client.aclose()


class NotificationDispatcher:
    """
    Runs sink deliveries on detached tasks.

    Strong references to in-flight tasks are kept until they finish so they
    are not garbage collected mid-delivery.
    """

    def __init__(self, sink: NotificationSink):
        self._sink = sink
        self._tasks: Set[asyncio.Task] = set()

    def dispatch(self, text: str, context: str = "") -> asyncio.Task:
        """
        Schedule delivery of a message and return immediately.

        Args:
            text: Message body
            context: Short label used in log lines (e.g. "transaction 5 paid")
        """
        task = asyncio.create_task(self._deliver(text, context))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _deliver(self, text: str, context: str) -> None:
        try:
            await self._sink.send(text)
            logger.info(f"Notification sent: {context}")
        except Exception as e:
            logger.warning(f"Notification failed ({context}): {type(e).__name__}: {e}")

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight deliveries; used on shutdown and in tests."""
        if not self._tasks:
            return
        pending = list(self._tasks)
        _, not_done = await asyncio.wait(pending, timeout=timeout)
        if not_done:
            for task in not_done:
                task.cancel()
            await asyncio.gather(*not_done, return_exceptions=True)
            logger.warning(f"Cancelled {len(not_done)} undelivered notifications")

    async def aclose(self, timeout: Optional[float] = 5.0) -> None:
        await self.drain(timeout=timeout)
        await self._sink.aclose()


# ============================================================================
# Message formatting
# ============================================================================

def format_new_order_message(transaction_id: int, product: ProductRecord, user: UserRecord) -> str:
    """Text announcing a freshly created, unpaid order."""
    lines = [
        "🧾 New transaction:",
        f"🆔 Deal: {transaction_id}",
        f"🆔 Product: {product.id}",
        "👤 Customer:",
        f"📞 Phone: {user.phone}",
        f"ℹ️ Name: {user.first_name} {user.last_name}",
        f"✈️ Country: {product.country}",
        f"🌆 City: {product.city}",
        f"💵 Price: {product.price}",
        "💳 Paid: 0",
    ]
    return "\n".join(lines)


def format_paid_message(transaction: TransactionRecord) -> str:
    """Text announcing a confirmed payment."""
    lines = [
        "🧾 New transaction:",
        f"🆔 Deal: {transaction.id}",
        "👤 Customer:",
        f"📞 Phone: {transaction.user.phone}",
        f"ℹ️ Name: {transaction.user.first_name} {transaction.user.last_name}",
        f"✈️ Country: {transaction.product.country}",
        f"🌆 City: {transaction.product.city}",
        "Paid",
    ]
    return "\n".join(lines)


def build_notification_sink(
    bot_token: Optional[SecretStr],
    chat_id: Optional[str],
    api_url: str = "https://api.telegram.org",
    timeout_seconds: float = 10.0
) -> NotificationSink:
    """Telegram sink when both token and chat are configured, log sink otherwise."""
    if bot_token is None or not bot_token.get_secret_value() or not chat_id:
        logger.warning("BOT_TOKEN or CHAT_ID not set; notifications will only be logged")
        return LoggingSink()
    return TelegramSink(bot_token, chat_id, api_url=api_url, timeout_seconds=timeout_seconds)
