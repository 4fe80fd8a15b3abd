"""Clients for external services."""

from payment_orchestrator.clients.webhook_transport import (
    HttpWebhookTransport,
    WebhookTransport,
    sign_payload,
    verify_signature,
)

__all__ = ["HttpWebhookTransport", "WebhookTransport", "sign_payload", "verify_signature"]
