"""
Fulfillment notifications.

The state machine calls a NotificationSink after its transaction commits and
swallows any failure. Sinks:
    - LoggingNotificationSink: no email gateway configured, log only
    - HttpNotificationSink: POST rendered mail to the email gateway
    - QueuedNotificationSink: enqueue delivery on the arq worker (retried)
"""
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Protocol
from urllib.parse import quote

import httpx
import structlog

from dropship.config import NotificationSettings
from dropship.errors import NotificationError
from dropship.models import OrderNotice

logger = structlog.get_logger(__name__)

NOTIFY_SHIPPING = "shipping"
NOTIFY_DELIVERY = "delivery"
NOTIFY_ISSUE = "issue"

CARRIER_TRACKING_URLS = {
    "usps": "https://tools.usps.com/go/TrackConfirmAction?tLabels={number}",
    "ups": "https://www.ups.com/track?tracknum={number}",
    "fedex": "https://www.fedex.com/fedextrack/?trknbr={number}",
    "dhl": "https://www.dhl.com/en/express/tracking.html?AWB={number}",
    "china post": "https://track.aftership.com/china-post/{number}",
    "cainiao": "https://global.cainiao.com/detail.htm?mailNoList={number}",
    "aliexpress standard shipping": "https://global.cainiao.com/detail.htm?mailNoList={number}",
}
FALLBACK_TRACKING_URL = "https://t.17track.net/en#nums={number}"


def get_tracking_url(tracking_number: str, carrier: Optional[str] = None) -> str:
    """Carrier tracking page URL, falling back to a universal tracker."""
    number = quote(tracking_number.strip(), safe="")
    template = CARRIER_TRACKING_URLS.get((carrier or "").strip().lower(), FALLBACK_TRACKING_URL)
    return template.format(number=number)


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    text: str


# =============================================================================
# Message rendering
# =============================================================================


def _items_text(notice: OrderNotice) -> str:
    return "\n".join(f"  - {item.name} x{item.quantity}" for item in notice.items) or "  (no items)"


def render_shipping_email(
    notice: OrderNotice,
    tracking_number: str,
    carrier: Optional[str],
    settings: NotificationSettings,
) -> EmailMessage:
    greeting = f"Hi {notice.customer_name}," if notice.customer_name else "Hi,"
    text = (
        f"{greeting}\n\n"
        f"Good news! Your order {notice.order_number} has shipped.\n\n"
        f"Carrier: {carrier or 'Standard Shipping'}\n"
        f"Tracking number: {tracking_number}\n"
        f"Track your package: {get_tracking_url(tracking_number, carrier)}\n\n"
        f"Items:\n{_items_text(notice)}\n\n"
        f"Thank you for shopping with {settings.store_name}.\n{settings.store_url}\n"
    )
    return EmailMessage(
        to=notice.customer_email or "",
        subject=f"Your order {notice.order_number} has shipped",
        text=text,
    )


def render_delivery_email(notice: OrderNotice, settings: NotificationSettings) -> EmailMessage:
    greeting = f"Hi {notice.customer_name}," if notice.customer_name else "Hi,"
    text = (
        f"{greeting}\n\n"
        f"Your order {notice.order_number} has been delivered.\n\n"
        f"Items:\n{_items_text(notice)}\n\n"
        f"We hope you enjoy your purchase from {settings.store_name}.\n{settings.store_url}\n"
    )
    return EmailMessage(
        to=notice.customer_email or "",
        subject=f"Your order {notice.order_number} has been delivered",
        text=text,
    )


def render_issue_email(notice: OrderNotice, issue_text: str, settings: NotificationSettings) -> EmailMessage:
    text = (
        f"A fulfillment issue was reported for order {notice.order_number}.\n\n"
        f"Dropship order: {notice.dropship_order_id}\n"
        f"Customer: {notice.customer_name or '-'} <{notice.customer_email or '-'}>\n\n"
        f"Issue:\n{issue_text}\n\n"
        f"Items:\n{_items_text(notice)}\n"
    )
    return EmailMessage(
        to=settings.admin_email,
        subject=f"[Fulfillment issue] Order {notice.order_number}",
        text=text,
    )


# =============================================================================
# Sinks
# =============================================================================


class NotificationSink(Protocol):
    async def send_shipping_notification(
        self, order: OrderNotice, tracking_number: str, carrier: Optional[str] = None
    ) -> None:
        ...

    async def send_delivery_notification(self, order: OrderNotice) -> None:
        ...

    async def send_issue_notification(self, order: OrderNotice, issue_text: str) -> None:
        ...


class LoggingNotificationSink:
    """Used when no email gateway is configured."""

    async def send_shipping_notification(
        self, order: OrderNotice, tracking_number: str, carrier: Optional[str] = None
    ) -> None:
        logger.warning(
            "notification_not_sent",
            reason="email gateway not configured",
            kind=NOTIFY_SHIPPING,
            order_number=order.order_number,
            tracking_number=tracking_number,
        )

    async def send_delivery_notification(self, order: OrderNotice) -> None:
        logger.warning(
            "notification_not_sent",
            reason="email gateway not configured",
            kind=NOTIFY_DELIVERY,
            order_number=order.order_number,
        )

    async def send_issue_notification(self, order: OrderNotice, issue_text: str) -> None:
        logger.warning(
            "notification_not_sent",
            reason="email gateway not configured",
            kind=NOTIFY_ISSUE,
            order_number=order.order_number,
        )


class HttpNotificationSink:
    """Posts rendered messages to an HTTP email gateway."""

    def __init__(
        self,
        settings: NotificationSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not settings.endpoint_url:
            raise ValueError("NOTIFY_ENDPOINT_URL is required for HttpNotificationSink")
        self.settings = settings
        headers = {"Content-Type": "application/json"}
        if settings.api_key:
            headers["Authorization"] = f"Bearer {settings.api_key}"
        self._client = httpx.AsyncClient(
            timeout=settings.timeout_seconds,
            transport=transport,
            headers=headers,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def send(self, message: EmailMessage, kind: str) -> None:
        """Deliver one message.

        Raises:
            NotificationError: Gateway unreachable or returned an error
        """
        if not message.to:
            logger.warning("notification_skipped_no_recipient", kind=kind, subject=message.subject)
            return
        payload: Dict[str, Any] = {"from": self.settings.from_email, **asdict(message)}
        try:
            response = await self._client.post(self.settings.endpoint_url, json=payload)
        except httpx.HTTPError as e:
            raise NotificationError(f"Email gateway request failed: {type(e).__name__}") from e
        if response.status_code >= 400:
            raise NotificationError(
                f"Email gateway returned HTTP {response.status_code}",
                details={"kind": kind},
            )
        logger.info("notification_sent", kind=kind, to=message.to)

    async def send_shipping_notification(
        self, order: OrderNotice, tracking_number: str, carrier: Optional[str] = None
    ) -> None:
        await self.send(render_shipping_email(order, tracking_number, carrier, self.settings), NOTIFY_SHIPPING)

    async def send_delivery_notification(self, order: OrderNotice) -> None:
        await self.send(render_delivery_email(order, self.settings), NOTIFY_DELIVERY)

    async def send_issue_notification(self, order: OrderNotice, issue_text: str) -> None:
        await self.send(render_issue_email(order, issue_text, self.settings), NOTIFY_ISSUE)


class QueuedNotificationSink:
    """Hands notifications to the arq worker so failed deliveries are retried."""

    TASK_NAME = "send_notification_task"

    def __init__(self, arq_redis: Any) -> None:
        self._redis = arq_redis

    async def _enqueue(self, kind: str, order: OrderNotice, extra: Dict[str, Any]) -> None:
        job = await self._redis.enqueue_job(self.TASK_NAME, kind, order.model_dump(mode="json"), extra)
        logger.debug("notification_enqueued", kind=kind, arq_job_id=job.job_id if job else None)

    async def send_shipping_notification(
        self, order: OrderNotice, tracking_number: str, carrier: Optional[str] = None
    ) -> None:
        await self._enqueue(NOTIFY_SHIPPING, order, {"tracking_number": tracking_number, "carrier": carrier})

    async def send_delivery_notification(self, order: OrderNotice) -> None:
        await self._enqueue(NOTIFY_DELIVERY, order, {})

    async def send_issue_notification(self, order: OrderNotice, issue_text: str) -> None:
        await self._enqueue(NOTIFY_ISSUE, order, {"issue_text": issue_text})


async def dispatch_notification(
    sink: NotificationSink,
    kind: str,
    order: OrderNotice,
    extra: Dict[str, Any],
) -> None:
    """Route a serialized notification (worker side) to ``sink``."""
    if kind == NOTIFY_SHIPPING:
        await sink.send_shipping_notification(order, extra["tracking_number"], extra.get("carrier"))
    elif kind == NOTIFY_DELIVERY:
        await sink.send_delivery_notification(order)
    elif kind == NOTIFY_ISSUE:
        await sink.send_issue_notification(order, extra["issue_text"])
    else:
        raise NotificationError(f"Unknown notification kind: {kind}")


def build_delivery_sink(settings: NotificationSettings) -> NotificationSink:
    """Sink that actually delivers (HTTP gateway) or logs when unconfigured."""
    if settings.endpoint_url:
        return HttpNotificationSink(settings)
    return LoggingNotificationSink()
