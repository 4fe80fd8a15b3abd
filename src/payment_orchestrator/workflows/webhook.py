"""
Webhook delivery workflow.

Delivers one webhook event to one merchant URL, retrying with exponential
backoff until the merchant acknowledges it (2xx) or the attempt ceiling is
reached. Every attempt is recorded on the webhook event record. Delivery is
never retried beyond the ceiling, which bounds retry storms against a
failing merchant endpoint.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

import structlog

from payment_orchestrator.clients.webhook_transport import WebhookTransport
from payment_orchestrator.infrastructure.stores import WebhookEventStore
from payment_orchestrator.models import (
    ExternalCallFailed,
    UnknownSignal,
    WebhookDeliveryInput,
    WebhookDeliveryResult,
)
from payment_orchestrator.retry import RetryExecutor, RetryPolicy
from payment_orchestrator.workflows.payment import utcnow

logger = structlog.get_logger(__name__)

DEFAULT_DELIVERY_POLICY = RetryPolicy(
    initial_interval=60.0,
    maximum_interval=3600.0,
    backoff_coefficient=2.0,
    maximum_attempts=5,
)

DEFAULT_STORE_POLICY = RetryPolicy(
    initial_interval=1.0,
    maximum_interval=10.0,
    backoff_coefficient=2.0,
    maximum_attempts=3,
)


class WebhookDeliveryWorkflow:
    """
    One webhook delivery instance.

    Args:
        delivery_input: Event, destination and payload
        transport: Signs and sends the payload
        event_store: Records attempts and the final outcome
        policy: Attempt ceiling and backoff between deliveries
        store_policy: Retry policy for writes to the event store
        sleep: Awaitable sleep used between deliveries
        now: Clock used for timestamps
        workflow_id: Identifier used in logs; defaults to ``webhook-<event_id>``
    """

    def __init__(
        self,
        delivery_input: WebhookDeliveryInput,
        transport: WebhookTransport,
        event_store: WebhookEventStore,
        policy: RetryPolicy = DEFAULT_DELIVERY_POLICY,
        store_policy: RetryPolicy = DEFAULT_STORE_POLICY,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        now: Callable[[], datetime] = utcnow,
        workflow_id: str | None = None,
    ) -> None:
        self.input = delivery_input
        self.transport = transport
        self.event_store = event_store
        self.policy = policy
        self.store_policy = store_policy
        self._sleep = sleep or asyncio.sleep
        self._executor = RetryExecutor(sleep=self._sleep)
        self._now = now
        self.workflow_id = workflow_id or f"webhook-{delivery_input.webhook_event_id}"
        self.attempts = 0

    def handle_signal(self, name: str, payload: dict | None = None) -> bool:
        raise UnknownSignal(f"Webhook delivery workflow does not handle signal {name!r}")

    async def _store(self, operation_name: str, operation: Callable[[], Awaitable[None]]) -> None:
        await self._executor.execute(
            operation,
            self.store_policy,
            operation_name=operation_name,
            webhook_event_id=self.input.webhook_event_id,
        )

    async def run(self) -> WebhookDeliveryResult:
        """Deliver until acknowledged or out of attempts. Never raises."""
        structlog.contextvars.bind_contextvars(
            workflow_id=self.workflow_id,
            webhook_event_id=self.input.webhook_event_id,
        )
        last_status: int | None = None
        last_error: str | None = None
        try:
            for attempt in range(1, self.policy.maximum_attempts + 1):
                self.attempts = attempt
                attempted_at = self._now()
                await self._store(
                    "webhook_record_attempt",
                    lambda: self.event_store.record_attempt(
                        self.input.webhook_event_id, attempt, attempted_at
                    ),
                )

                try:
                    response = await self.transport.deliver(
                        self.input.webhook_url,
                        self.input.payload,
                        self.input.webhook_secret,
                    )
                except Exception as e:
                    last_status = None
                    last_error = str(e) or type(e).__name__
                    logger.warning(
                        "webhook_delivery_error",
                        attempt=attempt,
                        error_type=type(e).__name__,
                        error=last_error,
                    )
                else:
                    last_status = response.status_code
                    if response.success:
                        delivered_at = self._now()
                        # The merchant acknowledged; a failed bookkeeping write
                        # does not turn the delivery into a failure.
                        try:
                            await self._store(
                                "webhook_mark_delivered",
                                lambda: self.event_store.mark_delivered(
                                    self.input.webhook_event_id, attempt, delivered_at
                                ),
                            )
                        except ExternalCallFailed as e:
                            logger.error(
                                "webhook_mark_delivered_failed",
                                attempt=attempt,
                                error=str(e.last_error),
                            )
                        logger.info(
                            "webhook_delivered",
                            attempt=attempt,
                            status_code=response.status_code,
                        )
                        return WebhookDeliveryResult(
                            success=True,
                            attempts=attempt,
                            status_code=response.status_code,
                            delivered_at=delivered_at,
                        )
                    last_error = f"Merchant endpoint returned HTTP {response.status_code}"
                    logger.warning(
                        "webhook_delivery_rejected",
                        attempt=attempt,
                        status_code=response.status_code,
                    )

                if attempt < self.policy.maximum_attempts:
                    delay = self.policy.delay_for_attempt(attempt)
                    next_retry_at = attempted_at + timedelta(seconds=delay)
                    await self._store(
                        "webhook_schedule_retry",
                        lambda: self.event_store.schedule_retry(
                            self.input.webhook_event_id, next_retry_at, last_error
                        ),
                    )
                    logger.info(
                        "webhook_retry_scheduled",
                        attempt=attempt,
                        next_retry_at=next_retry_at.isoformat(),
                        delay_seconds=delay,
                    )
                    await self._sleep(delay)

            await self._store(
                "webhook_mark_failed",
                lambda: self.event_store.mark_failed(
                    self.input.webhook_event_id, self.attempts, last_error
                ),
            )
            logger.error(
                "webhook_delivery_failed",
                attempts=self.attempts,
                status_code=last_status,
                error=last_error,
            )
            return WebhookDeliveryResult(
                success=False,
                attempts=self.attempts,
                status_code=last_status,
                error_message=last_error,
            )

        except ExternalCallFailed as e:
            logger.error(
                "webhook_event_store_unavailable",
                attempts=self.attempts,
                operation=e.operation,
                error=str(e.last_error),
            )
            return WebhookDeliveryResult(
                success=False,
                attempts=self.attempts,
                status_code=last_status,
                error_message=str(e),
            )
        finally:
            structlog.contextvars.unbind_contextvars("workflow_id", "webhook_event_id")
