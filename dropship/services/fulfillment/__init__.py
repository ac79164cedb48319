"""Dropship fulfillment: order intake, state machine, notifications, queries."""
from dropship.services.fulfillment.notifications import (
    HttpNotificationSink,
    LoggingNotificationSink,
    NotificationSink,
    QueuedNotificationSink,
    get_tracking_url,
)
from dropship.services.fulfillment.order_handler import OrderHandler
from dropship.services.fulfillment.service import FulfillmentService
from dropship.services.fulfillment.state_machine import (
    TRANSITIONS,
    FulfillmentStateMachine,
    can_transition,
)

__all__ = [
    "HttpNotificationSink",
    "LoggingNotificationSink",
    "NotificationSink",
    "QueuedNotificationSink",
    "get_tracking_url",
    "OrderHandler",
    "FulfillmentService",
    "TRANSITIONS",
    "FulfillmentStateMachine",
    "can_transition",
]
