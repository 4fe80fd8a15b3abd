"""Unit tests for the retried call layer."""

import pytest

from payment_orchestrator.activities import CallOutcome, CallOutcomeKind, PaymentActivities
from payment_orchestrator.models import (
    ExternalCallFailed,
    OrderStatus,
    PaymentStatus,
    ProcessorNotFound,
    ProcessorTimeout,
    RefundInput,
    RefundStatus,
    RegistryError,
)

from conftest import FakeConfigProvider, FakeOrderStore, make_payment_input


class TestCallOutcome:
    """Tests for the outcome value."""

    def test_ok_outcome(self):
        outcome = CallOutcome(kind=CallOutcomeKind.OK, value=42)

        assert outcome.ok
        assert outcome.message == ""

    def test_exhausted_message_is_last_error(self):
        error = ExternalCallFailed("create_payment", 5, ProcessorTimeout("gateway timeout"))
        outcome = CallOutcome(kind=CallOutcomeKind.EXHAUSTED, error=error, attempts=5)

        assert not outcome.ok
        assert outcome.message == "gateway timeout"

    def test_configuration_error_message(self):
        outcome = CallOutcome(kind=CallOutcomeKind.CONFIGURATION_ERROR, error=ProcessorNotFound("x", ["mock"]))

        assert outcome.message == "Processor x not found. Available: mock"


@pytest.mark.asyncio
class TestCreatePayment:
    """Tests for submitting payments through the call layer."""

    async def test_ok(self, activities, config_provider):
        outcome = await activities.create_payment(make_payment_input("tok_success"))

        assert outcome.kind == CallOutcomeKind.OK
        assert outcome.value.status == PaymentStatus.CAPTURED
        assert config_provider.calls == [("merchant-1", "mock")]

    async def test_exhausted(self, activities, sleeper):
        outcome = await activities.create_payment(make_payment_input("tok_rate_limit"))

        assert outcome.kind == CallOutcomeKind.EXHAUSTED
        assert outcome.attempts == 3
        assert outcome.message == "Mock processor rate limit exceeded"
        assert sleeper.delays == [1.0, 2.0]

    async def test_unknown_processor(self, activities, config_provider):
        outcome = await activities.create_payment(make_payment_input(processor="stripe"))

        assert outcome.kind == CallOutcomeKind.CONFIGURATION_ERROR
        assert isinstance(outcome.error, ProcessorNotFound)
        assert config_provider.calls == []

    async def test_missing_config(self, registry, order_store, executor, retry_policy, sleeper):
        activities = PaymentActivities(
            registry, FakeConfigProvider(missing=True), order_store, executor, retry_policy, retry_policy
        )

        outcome = await activities.create_payment(make_payment_input())

        assert outcome.kind == CallOutcomeKind.CONFIGURATION_ERROR
        assert sleeper.delays == []

    async def test_default_policies(self, registry, config_provider, order_store):
        activities = PaymentActivities(registry, config_provider, order_store)

        assert activities.processor_policy.maximum_attempts == 5
        assert RegistryError in activities.processor_policy.non_retryable_errors
        assert RegistryError not in activities.order_update_policy.non_retryable_errors
        assert activities.order_update_policy.maximum_attempts == 5


@pytest.mark.asyncio
class TestFollowUpCalls:
    """Tests for capture, refund and status lookups."""

    async def test_capture(self, activities):
        created = await activities.create_payment(make_payment_input("tok_authorize"))

        outcome = await activities.capture_payment(
            "merchant-1", "mock", created.value.processor_order_id, 2500
        )

        assert outcome.ok
        assert outcome.value.status == PaymentStatus.CAPTURED

    async def test_refund(self, activities):
        refund = RefundInput(order_id="order-1", transaction_id="mock_txn_1", amount=500)

        outcome = await activities.refund_payment("merchant-1", "mock", refund)

        assert outcome.ok
        assert outcome.value.status == RefundStatus.SUCCESS

    async def test_status(self, activities):
        created = await activities.create_payment(make_payment_input("tok_pending"))

        outcome = await activities.get_payment_status("merchant-1", "mock", created.value.processor_order_id)

        assert outcome.value.status == PaymentStatus.PENDING

    async def test_follow_up_with_unknown_processor(self, activities):
        outcome = await activities.get_payment_status("merchant-1", "adyen", "ord_1")

        assert outcome.kind == CallOutcomeKind.CONFIGURATION_ERROR


@pytest.mark.asyncio
class TestUpdateOrderStatus:
    """Tests for persisting order status."""

    async def test_ok(self, activities, order_store):
        outcome = await activities.update_order_status(
            "order-1", OrderStatus.CAPTURED, processor_order_id="ord_1", processor_transaction_id="txn_1"
        )

        assert outcome.ok
        assert order_store.calls == [("order-1", OrderStatus.CAPTURED, "ord_1", "txn_1")]

    async def test_retried_then_exhausted(self, registry, config_provider, executor, retry_policy):
        store = FakeOrderStore(failures=10)
        activities = PaymentActivities(registry, config_provider, store, executor, retry_policy, retry_policy)

        outcome = await activities.update_order_status("order-1", OrderStatus.FAILED)

        assert outcome.kind == CallOutcomeKind.EXHAUSTED
        assert outcome.attempts == 3
        assert store.attempts == 3
        assert store.calls == []
