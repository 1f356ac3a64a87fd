"""
Tenant Notification Service.

WHAT:
    Pushes "new order" / "new customer" messages to the tenant that owns the
    integration a webhook arrived on. Telegram Bot API is the only channel.

WHY:
    Sellers act on new orders (COD confirmation calls) within minutes, so a
    push beats polling the dashboard. Delivery is best effort: a Telegram
    outage must never fail or slow down a webhook.

DESIGN:
    - Notifier protocol: `async notify(user_id, notification) -> bool`
    - TelegramNotifier: httpx AsyncClient, HTML parse mode, chat id read from
      users.telegram_chat_id with its own session (the request session is
      closed by the time the task runs)
    - LoggingNotifier: used when TELEGRAM_BOT_TOKEN is not configured
    - spawn_background(): detached asyncio task with its own error handling;
      handlers never await it

NOTIFICATION SHAPE:
    {
        "type": "new_order" | "new_customer",
        "integration_name": "My Store",
        "details": {...}   # see build_*_notification()
    }

REFERENCES:
    - Telegram sendMessage: https://core.telegram.org/bots/api#sendmessage
    - orderhub/routers/order_webhooks.py, orderhub/routers/customer_webhooks.py
"""

import asyncio
import html
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol
from uuid import UUID

import httpx
from starlette.concurrency import run_in_threadpool

from orderhub.telemetry import capture_exception

logger = logging.getLogger(__name__)


NOTIFICATION_NEW_ORDER = "new_order"
NOTIFICATION_NEW_CUSTOMER = "new_customer"


class Notifier(Protocol):
    async def notify(self, user_id: UUID, notification: Dict[str, Any]) -> bool:
        ...


# =============================================================================
# NOTIFICATION BUILDERS
# =============================================================================

def build_order_notification(order, customer, integration, crm_lead_id=None) -> Dict[str, Any]:
    """Notification for a newly ingested order."""
    return {
        "type": NOTIFICATION_NEW_ORDER,
        "integration_name": integration.name,
        "details": {
            "order_id": str(order.id),
            "external_order_id": order.external_order_id,
            "status": order.status,
            "total_amount": str(order.total_amount),
            "currency": order.currency,
            "item_count": len(order.items),
            "customer_name": customer.name,
            "customer_email": customer.email,
            "customer_phone": customer.phone,
            "crm_lead_id": str(crm_lead_id) if crm_lead_id else None,
        },
    }


def build_customer_notification(customer, integration) -> Dict[str, Any]:
    """Notification for a customer created through the generic webhook."""
    return {
        "type": NOTIFICATION_NEW_CUSTOMER,
        "integration_name": integration.name,
        "details": {
            "customer_id": str(customer.id),
            "name": customer.name,
            "email": customer.email,
            "phone": customer.phone,
            "source": customer.source,
        },
    }


def format_telegram_message(notification: Dict[str, Any]) -> str:
    """Render a notification as Telegram HTML.

    Every interpolated value is escaped; only the markup written here is HTML.
    """
    details = notification.get("details") or {}
    store = html.escape(str(notification.get("integration_name") or "your store"))

    def field(label: str, value: Any) -> Optional[str]:
        if value in (None, ""):
            return None
        return f"<b>{label}:</b> {html.escape(str(value))}"

    if notification.get("type") == NOTIFICATION_NEW_ORDER:
        amount = details.get("total_amount")
        if amount is not None and details.get("currency"):
            amount = f"{amount} {details['currency']}"
        lines = [
            f"🛒 <b>New order from {store}</b>",
            "",
            field("Order", f"#{details.get('external_order_id')}"),
            field("Customer", details.get("customer_name")),
            field("Email", details.get("customer_email")),
            field("Phone", details.get("customer_phone")),
            field("Total", amount),
            field("Items", details.get("item_count")),
            field("Status", details.get("status")),
        ]
    elif notification.get("type") == NOTIFICATION_NEW_CUSTOMER:
        lines = [
            f"👤 <b>New customer from {store}</b>",
            "",
            field("Name", details.get("name")),
            field("Email", details.get("email")),
            field("Phone", details.get("phone")),
            field("Source", details.get("source")),
        ]
    else:
        lines = [
            f"🔔 <b>{html.escape(str(notification.get('type', 'notification')))}</b> ({store})",
        ] + [field(key, value) for key, value in details.items()]

    return "\n".join(line for line in lines if line is not None)


# =============================================================================
# NOTIFIERS
# =============================================================================

def resolve_telegram_chat_id(user_id: UUID) -> Optional[str]:
    """Chat id of a tenant with Telegram notifications enabled, else None."""
    from orderhub.database import get_sync_session
    from orderhub.models import User

    with get_sync_session() as db:
        user = db.get(User, user_id)
        if user is None or not user.telegram_notifications_enabled:
            return None
        return user.telegram_chat_id or None


class LoggingNotifier:
    """Notifier used when no bot token is configured; writes to the log only."""

    async def notify(self, user_id: UUID, notification: Dict[str, Any]) -> bool:
        logger.info(
            f"[NOTIFY] {notification.get('type')} for user {user_id} "
            f"({notification.get('integration_name')}) - Telegram not configured, logged only",
            extra={"details": notification.get("details")},
        )
        return True


class TelegramNotifier:
    """
    Sends notifications through the Telegram Bot API.

    Usage:
        notifier = TelegramNotifier(bot_token=settings.TELEGRAM_BOT_TOKEN)
        spawn_background(notifier.notify(user.id, notification))
    """

    def __init__(
        self,
        bot_token: str,
        api_base: str = "https://api.telegram.org",
        timeout: float = 10.0,
        chat_id_resolver: Optional[Callable[[UUID], Optional[str]]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Parameters:
            bot_token: Bot token from @BotFather
            api_base: Bot API base URL
            timeout: Per-request timeout in seconds
            chat_id_resolver: Blocking lookup of a tenant's chat id (run in a
                worker thread); defaults to the users table
            transport: Optional httpx transport (tests)
        """
        self.bot_token = bot_token
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._resolve_chat_id = chat_id_resolver or resolve_telegram_chat_id
        self._transport = transport

    async def notify(self, user_id: UUID, notification: Dict[str, Any]) -> bool:
        chat_id = await run_in_threadpool(self._resolve_chat_id, user_id)
        if not chat_id:
            logger.info(f"[NOTIFY] No Telegram chat configured for user {user_id}, skipping")
            return False

        return await self.send_message(chat_id, format_telegram_message(notification))

    async def send_message(self, chat_id: str, text: str) -> bool:
        """
        POST sendMessage.

        Returns:
            True if Telegram accepted the message, False otherwise (never raises
            for HTTP or API errors)
        """
        url = f"{self.api_base}/bot{self.bot_token}/sendMessage"
        payload = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload)

            if response.status_code == 200 and response.json().get("ok"):
                logger.info(f"[NOTIFY] Telegram message sent to chat {chat_id}")
                return True

            logger.error(
                f"[NOTIFY] Telegram API error: status={response.status_code}, body={response.text}"
            )
            return False

        except httpx.TimeoutException:
            logger.error(f"[NOTIFY] Telegram request timed out after {self.timeout}s")
            return False
        except httpx.HTTPError as e:
            logger.error(f"[NOTIFY] Telegram HTTP error: {e}")
            return False


# =============================================================================
# FIRE-AND-FORGET
# =============================================================================

# Strong references; the event loop only keeps weak ones to running tasks
_background_tasks: set = set()


async def _run_guarded(coro: Awaitable[Any], label: str) -> Any:
    try:
        return await coro
    except Exception as exc:
        logger.exception(f"[NOTIFY] Background task '{label}' failed: {exc}")
        capture_exception(exc, extra={"task": label})
        return None


def spawn_background(coro: Awaitable[Any], label: str = "notification") -> asyncio.Task:
    """Run a coroutine detached from the request.

    The caller never awaits the returned task. Exceptions are logged and sent
    to Sentry, never re-raised.
    """
    task = asyncio.create_task(_run_guarded(coro, label))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task
