"""Pytest configuration and shared fixtures for all tests.

This module provides:
- In-memory fakes for the storage and transport collaborators
- A recording sleep so retry tests run instantly and can assert on delays
- Registry / activities fixtures wired with the mock processor
"""

import asyncio
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from payment_orchestrator.activities import PaymentActivities
from payment_orchestrator.models import (
    DeliveryResponse,
    OrderStatus,
    PaymentInput,
    PaymentMethod,
    PaymentMethodType,
    PaymentResult,
    PaymentStatus,
    ProcessorConfig,
    ProcessorConfigNotFound,
    RefundResult,
    RefundStatus,
)
from payment_orchestrator.processors import PaymentProcessor, build_registry
from payment_orchestrator.retry import RetryExecutor, RetryPolicy


class RecordingSleep:
    """Async sleep replacement that records requested delays and yields once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


class FakeOrderStore:
    """Records order status updates; can be told to fail."""

    def __init__(self, failures: int = 0, error: Exception | None = None) -> None:
        self.calls: list[tuple[str, OrderStatus, str | None, str | None]] = []
        self.failures = failures
        self.error = error or ConnectionError("database unavailable")
        self.attempts = 0

    async def update_order_status(
        self,
        order_id: str,
        status: OrderStatus,
        processor_order_id: str | None = None,
        processor_transaction_id: str | None = None,
    ) -> None:
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise self.error
        self.calls.append((order_id, status, processor_order_id, processor_transaction_id))

    @property
    def statuses(self) -> list[OrderStatus]:
        return [call[1] for call in self.calls]


class FakeConfigProvider:
    """Returns a test-mode config for every merchant unless told otherwise."""

    def __init__(self, missing: bool = False) -> None:
        self.missing = missing
        self.calls: list[tuple[str, str]] = []

    async def get_processor_config(self, merchant_id: str, processor: str) -> ProcessorConfig:
        self.calls.append((merchant_id, processor))
        if self.missing:
            raise ProcessorConfigNotFound(f"No enabled {processor} configuration for merchant {merchant_id}")
        return ProcessorConfig(
            merchant_id=merchant_id,
            processor=processor,
            test_mode=True,
            credentials={"api_key": "test_key"},
        )


class FakeWebhookStore:
    """Records webhook event writes in order."""

    def __init__(self) -> None:
        self.events: list[tuple[Any, ...]] = []

    async def record_attempt(self, webhook_event_id: str, attempts: int, attempted_at: datetime) -> None:
        self.events.append(("attempt", webhook_event_id, attempts, attempted_at))

    async def schedule_retry(self, webhook_event_id: str, next_retry_at: datetime, error_message: str | None) -> None:
        self.events.append(("retry", webhook_event_id, next_retry_at, error_message))

    async def mark_delivered(self, webhook_event_id: str, attempts: int, delivered_at: datetime) -> None:
        self.events.append(("delivered", webhook_event_id, attempts, delivered_at))

    async def mark_failed(self, webhook_event_id: str, attempts: int, error_message: str | None) -> None:
        self.events.append(("failed", webhook_event_id, attempts, error_message))

    def kinds(self) -> list[str]:
        return [event[0] for event in self.events]


class FakeTransport:
    """Replays scripted delivery outcomes (responses or exceptions)."""

    def __init__(self, outcomes: list[DeliveryResponse | Exception]) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[tuple[str, dict[str, Any], str | None]] = []

    async def deliver(self, url: str, payload: dict[str, Any], secret: str | None = None) -> DeliveryResponse:
        self.calls.append((url, payload, secret))
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class ScriptedProcessor(PaymentProcessor):
    """Processor whose create_payment replays scripted results or errors."""

    def __init__(self, name: str, outcomes: list[PaymentResult | Exception]) -> None:
        self.name = name
        self.outcomes = list(outcomes)
        self.create_calls = 0

    async def create_payment(self, payment_input, config):
        self.create_calls += 1
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def capture_payment(self, processor_order_id, amount, config):
        return PaymentResult(success=True, status=PaymentStatus.CAPTURED, processor_order_id=processor_order_id)

    async def refund_payment(self, processor_transaction_id, amount, config):
        return RefundResult(success=True, status=RefundStatus.SUCCESS, refund_id="rf_1")

    async def get_payment_status(self, processor_order_id, config):
        return PaymentResult(success=True, status=PaymentStatus.CAPTURED, processor_order_id=processor_order_id)


def make_payment_input(
    token: str | None = "tok_success",
    processor: str = "mock",
    order_id: str = "order-1",
    **overrides: Any,
) -> PaymentInput:
    """Build a PaymentInput for the mock processor."""
    fields: dict[str, Any] = {
        "order_id": order_id,
        "merchant_id": "merchant-1",
        "amount": 2500,
        "currency": "usd",
        "processor": processor,
        "return_url": "https://shop.example/return",
        "payment_method": PaymentMethod(type=PaymentMethodType.CARD, token=token) if token else None,
    }
    fields.update(overrides)
    return PaymentInput(**fields)


@pytest.fixture
def sleeper():
    """Instant sleep that records delays."""
    return RecordingSleep()


@pytest.fixture
def executor(sleeper):
    """Retry executor that never really waits."""
    return RetryExecutor(sleep=sleeper)


@pytest.fixture
def retry_policy():
    """Small retry policy used across tests."""
    return RetryPolicy(
        initial_interval=1.0,
        maximum_interval=30.0,
        backoff_coefficient=2.0,
        maximum_attempts=3,
    )


@pytest.fixture
def registry():
    """Fresh registry with the built-in processors."""
    return build_registry()


@pytest.fixture
def order_store():
    return FakeOrderStore()


@pytest.fixture
def config_provider():
    return FakeConfigProvider()


@pytest.fixture
def activities(registry, config_provider, order_store, executor, retry_policy):
    """Call layer wired to fakes and an instant retry executor."""
    return PaymentActivities(
        registry=registry,
        config_provider=config_provider,
        order_store=order_store,
        executor=executor,
        processor_policy=retry_policy,
        order_update_policy=retry_policy,
    )


@pytest.fixture
def webhook_store():
    return FakeWebhookStore()
