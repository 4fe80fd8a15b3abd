"""HTTP transport for merchant webhook delivery."""

import hashlib
import hmac
import json
import time
from typing import Any, Protocol

import httpx
import structlog

from payment_orchestrator.models import DeliveryResponse, ProcessorTimeout

logger = structlog.get_logger(__name__)


class WebhookTransport(Protocol):
    """Sends one signed webhook payload and reports what the merchant answered."""

    async def deliver(
        self,
        url: str,
        payload: dict[str, Any],
        secret: str | None = None,
    ) -> DeliveryResponse: ...


def sign_payload(secret: str, timestamp: int, body: bytes) -> str:
    """
    Compute the webhook signature header value.

    The signed message is ``"<timestamp>.<body>"`` so a captured request
    cannot be replayed with a different timestamp.

    Returns:
        ``t=<timestamp>,v1=<hex HMAC-SHA256>``
    """
    message = f"{timestamp}.".encode() + body
    digest = hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def verify_signature(secret: str, header_value: str, body: bytes) -> bool:
    """Check a signature header produced by ``sign_payload``."""
    try:
        parts = dict(item.split("=", 1) for item in header_value.split(","))
        timestamp = int(parts["t"])
    except (KeyError, ValueError):
        return False
    expected = sign_payload(secret, timestamp, body)
    return hmac.compare_digest(expected, header_value)


class HttpWebhookTransport:
    """
    Delivers webhooks over HTTP POST.

    A delivery counts as acknowledged only for 2xx responses. Timeouts and
    connection failures raise ProcessorTimeout so the delivery workflow can
    record a failed attempt and retry.
    """

    def __init__(
        self,
        timeout_seconds: float = 10.0,
        signature_header: str = "X-Webhook-Signature",
        user_agent: str = "payment-orchestrator-webhooks/1.0",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the webhook transport.

        Args:
            timeout_seconds: Request timeout in seconds (default: 10.0)
            signature_header: Header carrying the HMAC signature
            user_agent: User-Agent sent with every delivery
            http_client: Pre-configured client (for testing)
        """
        self.timeout_seconds = timeout_seconds
        self.signature_header = signature_header
        self.user_agent = user_agent
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    async def close(self) -> None:
        """Close the HTTP client connection pool."""
        await self.http_client.aclose()

    async def deliver(
        self,
        url: str,
        payload: dict[str, Any],
        secret: str | None = None,
    ) -> DeliveryResponse:
        """
        POST ``payload`` as JSON to ``url``.

        Returns:
            DeliveryResponse with the HTTP status and whether it was a 2xx

        Raises:
            ProcessorTimeout: Timeout or network error (RETRYABLE)
        """
        body = json.dumps(payload, separators=(",", ":"), sort_keys=True, default=str).encode()
        timestamp = int(time.time())

        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
            "X-Webhook-Timestamp": str(timestamp),
        }
        if event_id := payload.get("id"):
            headers["X-Webhook-Id"] = str(event_id)
        if secret:
            headers[self.signature_header] = sign_payload(secret, timestamp, body)

        try:
            response = await self.http_client.post(url, content=body, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning("webhook_transport_timeout", url=url, error=str(e))
            raise ProcessorTimeout(f"Webhook delivery to {url} timed out") from e
        except httpx.RequestError as e:
            logger.warning("webhook_transport_request_error", url=url, error=str(e))
            raise ProcessorTimeout(f"Webhook delivery request error: {e}") from e

        success = 200 <= response.status_code < 300
        logger.info(
            "webhook_transport_response",
            url=url,
            status_code=response.status_code,
            success=success,
            signed=bool(secret),
        )
        return DeliveryResponse(status_code=response.status_code, success=success)

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
