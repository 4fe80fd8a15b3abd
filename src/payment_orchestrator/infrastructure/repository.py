"""PostgreSQL implementations of the storage collaborators.

Tables (owned by the backend's migrations):
- orders: status and processor identifiers per order
- transactions: one row per processor transaction
- webhook_events: delivery progress per event
- processor_configs: per-merchant processor credentials (encrypted)
"""

import json
from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from payment_orchestrator.infrastructure import database
from payment_orchestrator.models import (
    OrderStatus,
    ProcessorConfig,
    ProcessorConfigNotFound,
)

logger = structlog.get_logger()

CredentialDecryptor = Callable[[str], str]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PostgresOrderStore:
    """Writes order status changes to the ``orders`` table."""

    async def update_order_status(
        self,
        order_id: str,
        status: OrderStatus,
        processor_order_id: str | None = None,
        processor_transaction_id: str | None = None,
    ) -> None:
        """Update the order and, for a processor transaction, record it.

        Both writes happen in one transaction. Re-running the same update is
        harmless: the order row converges to the same values and the
        transaction insert is skipped when the processor id already exists.
        """
        async with database.transaction() as conn:
            await conn.execute(
                """
                UPDATE orders
                SET status = $2,
                    processor_order_id = COALESCE($3, processor_order_id),
                    updated_at = $4
                WHERE id = $1
                """,
                order_id,
                status.value,
                processor_order_id,
                _now(),
            )

            if processor_transaction_id:
                await conn.execute(
                    """
                    INSERT INTO transactions (order_id, type, amount, status, processor_transaction_id)
                    SELECT id, 'payment', amount, $2, $3
                    FROM orders
                    WHERE id = $1
                      AND NOT EXISTS (
                          SELECT 1 FROM transactions WHERE processor_transaction_id = $3
                      )
                    """,
                    order_id,
                    status.value,
                    processor_transaction_id,
                )

        logger.info(
            "order_row_updated",
            order_id=order_id,
            status=status.value,
            processor_order_id=processor_order_id,
            processor_transaction_id=processor_transaction_id,
        )


class PostgresWebhookEventStore:
    """Tracks webhook delivery progress in the ``webhook_events`` table."""

    async def record_attempt(self, webhook_event_id: str, attempts: int, attempted_at: datetime) -> None:
        async with database.get_connection() as conn:
            await conn.execute(
                """
                UPDATE webhook_events
                SET status = 'delivering',
                    attempts = $2,
                    last_attempt_at = $3
                WHERE id = $1
                """,
                webhook_event_id,
                attempts,
                attempted_at,
            )

    async def schedule_retry(
        self,
        webhook_event_id: str,
        next_retry_at: datetime,
        error_message: str | None,
    ) -> None:
        async with database.get_connection() as conn:
            await conn.execute(
                """
                UPDATE webhook_events
                SET status = 'retrying',
                    next_retry_at = $2
                WHERE id = $1
                """,
                webhook_event_id,
                next_retry_at,
            )
        logger.info(
            "webhook_event_retry_scheduled",
            webhook_event_id=webhook_event_id,
            next_retry_at=next_retry_at.isoformat(),
            error=error_message,
        )

    async def mark_delivered(self, webhook_event_id: str, attempts: int, delivered_at: datetime) -> None:
        async with database.get_connection() as conn:
            await conn.execute(
                """
                UPDATE webhook_events
                SET status = 'delivered',
                    attempts = $2,
                    delivered_at = $3,
                    next_retry_at = NULL
                WHERE id = $1
                """,
                webhook_event_id,
                attempts,
                delivered_at,
            )

    async def mark_failed(self, webhook_event_id: str, attempts: int, error_message: str | None) -> None:
        async with database.get_connection() as conn:
            await conn.execute(
                """
                UPDATE webhook_events
                SET status = 'failed',
                    attempts = $2,
                    next_retry_at = NULL
                WHERE id = $1
                """,
                webhook_event_id,
                attempts,
            )
        logger.warning(
            "webhook_event_failed_permanently",
            webhook_event_id=webhook_event_id,
            attempts=attempts,
            error=error_message,
        )


class PostgresProcessorConfigProvider:
    """
    Loads processor configuration from ``processor_configs``.

    Credentials are stored encrypted; ``decrypt_credentials`` turns the stored
    text into a JSON object of credential strings.
    """

    def __init__(self, decrypt_credentials: CredentialDecryptor) -> None:
        self.decrypt_credentials = decrypt_credentials

    async def get_processor_config(self, merchant_id: str, processor: str) -> ProcessorConfig:
        async with database.get_connection() as conn:
            row = await conn.fetchrow(
                """
                SELECT merchant_id, processor, credentials_encrypted, test_mode
                FROM processor_configs
                WHERE merchant_id = $1
                  AND processor = $2
                  AND enabled = TRUE
                ORDER BY priority ASC
                LIMIT 1
                """,
                merchant_id,
                processor,
            )

        if row is None:
            logger.error(
                "processor_config_not_found",
                merchant_id=merchant_id,
                processor=processor,
            )
            raise ProcessorConfigNotFound(
                f"No enabled {processor} configuration for merchant {merchant_id}"
            )

        credentials = json.loads(self.decrypt_credentials(row["credentials_encrypted"]))
        return ProcessorConfig(
            merchant_id=str(row["merchant_id"]),
            processor=row["processor"],
            test_mode=row["test_mode"],
            credentials=credentials,
        )
