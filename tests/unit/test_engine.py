"""Unit tests for the in-process workflow engine."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from payment_orchestrator.config import PaymentWorkflowSettings, Settings, WebhookSettings
from payment_orchestrator.engine import WorkflowEngine
from payment_orchestrator.models import (
    DeliveryResponse,
    OrderStatus,
    PaymentStatus,
    UnknownSignal,
    WebhookDeliveryInput,
    WorkflowAlreadyStarted,
    WorkflowNotFound,
)

from conftest import FakeTransport, make_payment_input


@pytest.fixture
def engine_settings():
    return Settings(
        payment=PaymentWorkflowSettings(action_timeout_seconds=30, poll_interval_seconds=0.05),
        webhook=WebhookSettings(initial_interval_seconds=1, maximum_interval_seconds=10, maximum_attempts=3),
    )


@pytest.fixture
def transport():
    return FakeTransport([DeliveryResponse(status_code=500, success=False), DeliveryResponse(status_code=200, success=True)])


@pytest.fixture
def engine(activities, transport, webhook_store, engine_settings, sleeper):
    return WorkflowEngine(
        activities=activities,
        webhook_transport=transport,
        webhook_store=webhook_store,
        settings=engine_settings,
        sleep=sleeper,
    )


async def wait_for_description(engine, workflow_id, key, value, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while engine.describe(workflow_id)[key] != value:
        if loop.time() > deadline:
            raise AssertionError(f"{workflow_id} never reached {key}={value}")
        await asyncio.sleep(0.005)


@pytest.mark.asyncio
class TestPaymentWorkflows:
    """Starting and signalling payment workflows."""

    async def test_start_and_wait_for_result(self, engine, order_store):
        workflow_id = await engine.start_payment(make_payment_input("tok_success"))

        result = await engine.result(workflow_id)

        assert workflow_id == "payment-order-1"
        assert result.status == PaymentStatus.CAPTURED
        assert engine.describe(workflow_id)["phase"] == "finalized"
        assert engine.describe(workflow_id)["done"] is True
        assert order_store.statuses == [OrderStatus.CAPTURED]

    async def test_duplicate_start_is_rejected(self, engine):
        await engine.start_payment(make_payment_input("tok_success"))

        with pytest.raises(WorkflowAlreadyStarted):
            await engine.start_payment(make_payment_input("tok_success"))

    async def test_signal_routes_to_target_workflow(self, engine):
        first = await engine.start_payment(make_payment_input("tok_requires_action", order_id="order-a"))
        second = await engine.start_payment(make_payment_input("tok_requires_action", order_id="order-b"))
        await wait_for_description(engine, first, "phase", "awaiting_action")
        await wait_for_description(engine, second, "phase", "awaiting_action")

        accepted = await engine.signal(first, "complete_payment", {"success": True, "processor_transaction_id": "tx1"})
        first_result = await engine.result(first)

        assert accepted is True
        assert first_result.processor_transaction_id == "tx1"
        assert engine.running() == [second]
        assert engine.describe(second)["awaiting_since"] is not None

        await engine.signal(second, "cancel_payment")
        second_result = await engine.result(second)
        assert second_result.error_code == "cancelled"
        assert engine.running() == []

    async def test_signal_after_finish_is_ignored(self, engine):
        workflow_id = await engine.start_payment(make_payment_input("tok_success"))
        await engine.result(workflow_id)

        assert await engine.signal(workflow_id, "cancel_payment") is False

    async def test_signal_unknown_workflow(self, engine):
        with pytest.raises(WorkflowNotFound):
            await engine.signal("payment-missing", "cancel_payment")

    async def test_unknown_signal_name(self, engine):
        workflow_id = await engine.start_payment(make_payment_input("tok_requires_action"))

        with pytest.raises(UnknownSignal):
            await engine.signal(workflow_id, "approve_payment")

        await engine.shutdown()

    async def test_settings_applied_to_workflow(self, engine):
        workflow_id = await engine.start_payment(make_payment_input("tok_requires_action"))
        workflow = engine._instances[workflow_id].workflow

        assert workflow.action_timeout.total_seconds() == 30
        assert workflow.poll_interval_seconds == 0.05

        await engine.shutdown()

    async def test_shutdown_cancels_running_workflows(self, engine):
        workflow_id = await engine.start_payment(make_payment_input("tok_requires_action"))
        await wait_for_description(engine, workflow_id, "phase", "awaiting_action")

        await engine.shutdown()

        assert engine.running() == []
        assert engine._instances[workflow_id].task.cancelled()


@pytest.mark.asyncio
class TestWebhookWorkflows:
    """Starting webhook delivery workflows."""

    async def test_webhook_delivery(self, engine, transport, webhook_store, sleeper):
        delivery = WebhookDeliveryInput(
            webhook_event_id="evt-1",
            merchant_id="merchant-1",
            webhook_url="https://merchant.example/webhooks",
            payload={"id": "evt-1"},
        )

        workflow_id = await engine.start_webhook_delivery(delivery)
        result = await engine.result(workflow_id)

        assert workflow_id == "webhook-evt-1"
        assert result.success is True
        assert result.attempts == 2
        assert sleeper.delays == [1.0]
        assert engine.describe(workflow_id)["attempts"] == 2
        assert webhook_store.kinds() == ["attempt", "retry", "attempt", "delivered"]

    async def test_webhook_rejects_signals(self, engine):
        delivery = WebhookDeliveryInput(
            webhook_event_id="evt-2",
            merchant_id="merchant-1",
            webhook_url="https://merchant.example/webhooks",
            payload={},
        )
        workflow_id = await engine.start_webhook_delivery(delivery)

        with pytest.raises(UnknownSignal):
            await engine.signal(workflow_id, "cancel_payment")

        await engine.result(workflow_id)

    async def test_describe_unknown_workflow(self, engine):
        with pytest.raises(WorkflowNotFound):
            engine.describe("webhook-missing")


class ManualClock:
    def __init__(self) -> None:
        self.current = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def clocked_engine(activities, transport, webhook_store, engine_settings, sleeper, clock):
    return WorkflowEngine(
        activities=activities,
        webhook_transport=transport,
        webhook_store=webhook_store,
        settings=engine_settings,
        sleep=sleeper,
        now=clock,
    )


@pytest.mark.asyncio
class TestFinishedWorkflowRetention:
    """Finished workflows are evicted after the retention window."""

    async def test_finished_workflow_evicted_after_retention(self, clocked_engine, clock):
        workflow_id = await clocked_engine.start_payment(make_payment_input("tok_success"))
        await clocked_engine.result(workflow_id)

        clock.advance(3599)
        assert clocked_engine.evict_finished() == []
        assert clocked_engine.describe(workflow_id)["done"] is True

        clock.advance(2)
        assert clocked_engine.evict_finished() == [workflow_id]
        with pytest.raises(WorkflowNotFound):
            clocked_engine.describe(workflow_id)

    async def test_running_workflow_is_never_evicted(self, clocked_engine, clock):
        workflow_id = await clocked_engine.start_payment(make_payment_input("tok_requires_action"))
        await wait_for_description(clocked_engine, workflow_id, "phase", "awaiting_action")

        assert clocked_engine.evict_finished(retention_seconds=0) == []
        assert clocked_engine.forget(workflow_id) is False
        assert clocked_engine.running() == [workflow_id]

        await clocked_engine.shutdown()

    async def test_start_evicts_expired_workflows(self, clocked_engine, clock):
        first = await clocked_engine.start_payment(make_payment_input("tok_success", order_id="order-a"))
        await clocked_engine.result(first)
        clock.advance(3601)

        second = await clocked_engine.start_payment(make_payment_input("tok_success", order_id="order-b"))
        await clocked_engine.result(second)

        assert list(clocked_engine._instances) == [second]

    async def test_forget_finished_workflow(self, engine):
        workflow_id = await engine.start_payment(make_payment_input("tok_success"))
        await engine.result(workflow_id)

        assert engine.forget(workflow_id) is True
        with pytest.raises(WorkflowNotFound):
            await engine.signal(workflow_id, "cancel_payment")

    async def test_forget_unknown_workflow(self, engine):
        with pytest.raises(WorkflowNotFound):
            engine.forget("payment-missing")
