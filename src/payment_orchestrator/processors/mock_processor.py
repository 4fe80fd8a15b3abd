"""
Mock payment processor for development and end-to-end testing.

This processor implements the full capability set without making network
calls. The outcome of ``create_payment`` is chosen by the payment method
token, so a test can drive every branch of the payment workflow (immediate
capture, decline, 3-D Secure style redirects, transient failures) simply by
choosing a token.

TEST TOKENS:
    tok_success              captured immediately
    tok_authorize            authorized (capture later)
    tok_pending              pending at the processor
    tok_requires_action      redirect required, completes via signal
    tok_decline              generic decline
    tok_insufficient_funds   decline with insufficient funds
    tok_timeout              raises ProcessorTimeout (retryable)
    tok_rate_limit           raises ProcessorTimeout (retryable)

Unknown tokens (or no payment method at all) fall back to ``default_response``.
"""

import asyncio
import uuid
from typing import Any

import structlog

from payment_orchestrator.models import (
    PaymentInput,
    PaymentResult,
    PaymentStatus,
    ProcessorConfig,
    ProcessorTimeout,
    RefundResult,
    RefundStatus,
)
from payment_orchestrator.processors.base import PaymentProcessor

logger = structlog.get_logger(__name__)

TEST_TOKEN_BEHAVIORS: dict[str, dict[str, Any]] = {
    # Success scenarios
    "tok_success": {"type": "captured", "description": "Captured immediately"},
    "tok_authorize": {"type": "authorized", "description": "Authorized, capture later"},
    "tok_pending": {"type": "pending", "description": "Pending at the processor"},
    # Customer action (3-D Secure, UPI collect, bank redirect)
    "tok_requires_action": {
        "type": "requires_action",
        "description": "Requires customer authentication",
    },
    # Decline scenarios
    "tok_decline": {
        "type": "decline",
        "code": "card_declined",
        "reason": "Your card was declined",
    },
    "tok_insufficient_funds": {
        "type": "decline",
        "code": "insufficient_funds",
        "reason": "Your card has insufficient funds",
    },
    # Transient errors
    "tok_timeout": {
        "type": "timeout",
        "description": "Simulates a 5xx error or network timeout",
    },
    "tok_rate_limit": {
        "type": "rate_limit",
        "description": "Simulates a 429 response",
    },
}

_STATUS_BY_TYPE = {
    "captured": PaymentStatus.CAPTURED,
    "authorized": PaymentStatus.AUTHORIZED,
    "pending": PaymentStatus.PENDING,
}


class MockProcessor(PaymentProcessor):
    """
    Mock payment processor for testing.

    Args:
        config: Optional configuration dict with keys:
            - default_response: behavior type for unknown tokens ("captured" by default)
            - latency_ms: simulated processing latency in milliseconds
            - token_behaviors: override the default token mapping
            - redirect_base_url: base URL for simulated redirects
            - max_tracked_payments: how many payments to remember for
              capture and status lookups; the oldest are forgotten first
    """

    name = "mock"

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        default_response: str = "captured",
        latency_ms: int = 0,
        max_tracked_payments: int = 10_000,
    ) -> None:
        self.config = config or {}
        self.default_response = self.config.get("default_response", default_response)
        self.latency_ms = self.config.get("latency_ms", latency_ms)
        self.token_behaviors = self.config.get("token_behaviors", TEST_TOKEN_BEHAVIORS)
        self.redirect_base_url = self.config.get(
            "redirect_base_url", "https://mock-processor.test/authenticate"
        )
        self.max_tracked_payments = self.config.get("max_tracked_payments", max_tracked_payments)
        # processor_order_id -> last known result, oldest first
        self._payments: dict[str, PaymentResult] = {}

        logger.info(
            "mock_processor_initialized",
            default_response=self.default_response,
            latency_ms=self.latency_ms,
        )

    async def _simulate_latency(self) -> None:
        if self.latency_ms > 0:
            await asyncio.sleep(self.latency_ms / 1000.0)

    def _remember(self, processor_order_id: str, result: PaymentResult) -> None:
        self._payments.pop(processor_order_id, None)
        self._payments[processor_order_id] = result
        while len(self._payments) > self.max_tracked_payments:
            del self._payments[next(iter(self._payments))]

    def _behavior_for(self, payment_input: PaymentInput) -> dict[str, Any]:
        token = payment_input.payment_method.token if payment_input.payment_method else None
        behavior = self.token_behaviors.get(token) if token else None
        if behavior is None:
            logger.info("mock_unknown_token", token=token, default_response=self.default_response)
            behavior = {"type": self.default_response}
        return behavior

    async def create_payment(
        self,
        payment_input: PaymentInput,
        config: ProcessorConfig,
    ) -> PaymentResult:
        """Create a payment whose outcome is chosen by the payment method token."""
        await self._simulate_latency()

        behavior = self._behavior_for(payment_input)
        behavior_type = behavior["type"]

        logger.info(
            "mock_create_payment",
            order_id=payment_input.order_id,
            amount=payment_input.amount,
            currency=payment_input.currency,
            behavior=behavior_type,
            test_mode=config.test_mode,
        )

        if behavior_type == "timeout":
            raise ProcessorTimeout(
                f"Mock processor timeout: {behavior.get('description', 'Simulated timeout')}"
            )

        if behavior_type == "rate_limit":
            raise ProcessorTimeout("Mock processor rate limit exceeded")

        processor_order_id = f"mock_ord_{uuid.uuid4().hex[:24]}"

        if behavior_type == "decline":
            result = PaymentResult(
                success=False,
                status=PaymentStatus.FAILED,
                processor_order_id=processor_order_id,
                error_code=behavior.get("code", "card_declined"),
                error_message=behavior.get("reason", "Card was declined"),
            )
        elif behavior_type == "requires_action":
            result = PaymentResult(
                success=False,
                status=PaymentStatus.REQUIRES_ACTION,
                processor_order_id=processor_order_id,
                redirect_url=f"{self.redirect_base_url}/{processor_order_id}",
                metadata={"return_url": payment_input.return_url},
            )
        elif behavior_type in _STATUS_BY_TYPE:
            status = _STATUS_BY_TYPE[behavior_type]
            result = PaymentResult(
                success=True,
                status=status,
                processor_order_id=processor_order_id,
                processor_transaction_id=(
                    f"mock_txn_{uuid.uuid4().hex[:24]}"
                    if status == PaymentStatus.CAPTURED
                    else None
                ),
                metadata=dict(payment_input.metadata),
            )
        else:
            logger.error("mock_unknown_behavior", behavior_type=behavior_type)
            raise ProcessorTimeout(f"Unknown mock behavior type: {behavior_type}")

        self._remember(processor_order_id, result)
        return result

    async def capture_payment(
        self,
        processor_order_id: str,
        amount: int,
        config: ProcessorConfig,
    ) -> PaymentResult:
        """Capture an authorized mock payment."""
        await self._simulate_latency()

        existing = self._payments.get(processor_order_id)
        if existing is None or existing.status != PaymentStatus.AUTHORIZED:
            logger.warning(
                "mock_capture_rejected",
                processor_order_id=processor_order_id,
                status=existing.status.value if existing else None,
            )
            return PaymentResult(
                success=False,
                status=PaymentStatus.FAILED,
                processor_order_id=processor_order_id,
                error_code="not_capturable",
                error_message="Payment is not in an authorized state",
            )

        result = PaymentResult(
            success=True,
            status=PaymentStatus.CAPTURED,
            processor_order_id=processor_order_id,
            processor_transaction_id=f"mock_txn_{uuid.uuid4().hex[:24]}",
            metadata={"captured_amount": amount},
        )
        self._remember(processor_order_id, result)
        logger.info("mock_capture_success", processor_order_id=processor_order_id, amount=amount)
        return result

    async def refund_payment(
        self,
        processor_transaction_id: str,
        amount: int,
        config: ProcessorConfig,
    ) -> RefundResult:
        """Refund a mock transaction (always succeeds for positive amounts)."""
        await self._simulate_latency()

        if amount <= 0:
            return RefundResult(
                success=False,
                status=RefundStatus.FAILED,
                error_code="invalid_amount",
                error_message="Refund amount must be positive",
            )

        refund_id = f"mock_rf_{uuid.uuid4().hex[:24]}"
        logger.info(
            "mock_refund_success",
            processor_transaction_id=processor_transaction_id,
            refund_id=refund_id,
            amount=amount,
        )
        return RefundResult(success=True, status=RefundStatus.SUCCESS, refund_id=refund_id)

    async def get_payment_status(
        self,
        processor_order_id: str,
        config: ProcessorConfig,
    ) -> PaymentResult:
        """Return the last known status of a mock payment."""
        await self._simulate_latency()

        existing = self._payments.get(processor_order_id)
        if existing is None:
            return PaymentResult(
                success=False,
                status=PaymentStatus.FAILED,
                processor_order_id=processor_order_id,
                error_code="not_found",
                error_message=f"Unknown processor order {processor_order_id}",
            )
        return existing
