"""Storage collaborator interfaces used by the workflows.

The workflows only ever emit writes against these records by id; they never
read orders or webhook events back in the middle of a run.
"""

from datetime import datetime
from typing import Protocol

from payment_orchestrator.models import OrderStatus, ProcessorConfig


class OrderStore(Protocol):
    """Persists order status changes. Repeated identical calls must be safe."""

    async def update_order_status(
        self,
        order_id: str,
        status: OrderStatus,
        processor_order_id: str | None = None,
        processor_transaction_id: str | None = None,
    ) -> None: ...


class ProcessorConfigProvider(Protocol):
    """Loads a merchant's configuration (with decrypted credentials) for a processor."""

    async def get_processor_config(self, merchant_id: str, processor: str) -> ProcessorConfig: ...


class WebhookEventStore(Protocol):
    """Tracks delivery progress of one webhook event record."""

    async def record_attempt(self, webhook_event_id: str, attempts: int, attempted_at: datetime) -> None: ...

    async def schedule_retry(
        self,
        webhook_event_id: str,
        next_retry_at: datetime,
        error_message: str | None,
    ) -> None: ...

    async def mark_delivered(self, webhook_event_id: str, attempts: int, delivered_at: datetime) -> None: ...

    async def mark_failed(self, webhook_event_id: str, attempts: int, error_message: str | None) -> None: ...
