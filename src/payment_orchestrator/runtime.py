"""Wiring of the production collaborators into a workflow engine."""

import structlog

from payment_orchestrator.activities import PaymentActivities
from payment_orchestrator.clients.webhook_transport import HttpWebhookTransport
from payment_orchestrator.config import Settings, settings as default_settings
from payment_orchestrator.engine import WorkflowEngine
from payment_orchestrator.infrastructure import database
from payment_orchestrator.infrastructure.repository import (
    CredentialDecryptor,
    PostgresOrderStore,
    PostgresProcessorConfigProvider,
    PostgresWebhookEventStore,
)
from payment_orchestrator.logging_config import configure_logging
from payment_orchestrator.processors.registry import ProcessorRegistry, build_registry
from payment_orchestrator.retry import RetryExecutor

logger = structlog.get_logger(__name__)


def create_engine(
    decrypt_credentials: CredentialDecryptor,
    settings: Settings | None = None,
    registry: ProcessorRegistry | None = None,
) -> WorkflowEngine:
    """
    Build a WorkflowEngine backed by PostgreSQL and HTTP webhook delivery.

    The processor registry is populated here, before any workflow can start,
    and is only read afterwards.

    Args:
        decrypt_credentials: Turns stored processor credentials into JSON text
        settings: Settings to use (defaults to environment settings)
        registry: Pre-built registry (defaults to the built-in processors)
    """
    settings = settings or default_settings

    configure_logging(
        log_level="DEBUG" if settings.debug else settings.log_level,
        format_as_json=settings.environment != "development",
        service_name=settings.service_name,
        environment=settings.environment,
    )

    database.configure_database(settings)
    registry = registry or build_registry()

    activities = PaymentActivities(
        registry=registry,
        config_provider=PostgresProcessorConfigProvider(decrypt_credentials),
        order_store=PostgresOrderStore(),
        executor=RetryExecutor(),
        processor_policy=settings.payment.processor_retry.to_policy(),
        order_update_policy=settings.payment.order_update_retry.to_policy(),
    )

    transport = HttpWebhookTransport(
        timeout_seconds=settings.webhook.timeout_seconds,
        signature_header=settings.webhook.signature_header,
        user_agent=settings.webhook.user_agent,
    )

    logger.info(
        "workflow_engine_created",
        environment=settings.environment,
        processors=registry.list(),
    )

    return WorkflowEngine(
        activities=activities,
        webhook_transport=transport,
        webhook_store=PostgresWebhookEventStore(),
        settings=settings,
    )


async def shutdown_engine(engine: WorkflowEngine) -> None:
    """Stop running workflows, then release the HTTP client and database pool."""
    await engine.shutdown()
    if isinstance(engine.webhook_transport, HttpWebhookTransport):
        await engine.webhook_transport.close()
    await database.close_pool()
    logger.info("workflow_engine_closed")
