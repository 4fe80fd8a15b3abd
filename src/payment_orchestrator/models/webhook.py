"""Webhook delivery models."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class WebhookDeliveryInput:
    """One webhook event to deliver to one merchant URL."""

    webhook_event_id: str
    merchant_id: str
    webhook_url: str
    payload: dict[str, Any]
    webhook_secret: str | None = None


@dataclass
class WebhookDeliveryResult:
    """Final outcome of a webhook delivery run."""

    success: bool
    attempts: int
    status_code: int | None = None
    delivered_at: datetime | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class DeliveryResponse:
    """What the delivery transport observed for a single attempt."""

    status_code: int
    success: bool
