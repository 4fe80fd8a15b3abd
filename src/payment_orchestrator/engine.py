"""
In-process workflow engine.

Runs each payment and webhook delivery as its own asyncio task, addressed by
workflow id, and routes named signals to the one instance they target.
Durability across process restarts belongs to the hosting engine; this class
only provides scheduling and addressing inside one process.

Finished workflows stay addressable (``result``, ``describe``, late signals)
for ``finished_workflow_retention_seconds`` and are evicted after that.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import structlog

from payment_orchestrator.activities import PaymentActivities
from payment_orchestrator.clients.webhook_transport import WebhookTransport
from payment_orchestrator.config import Settings, settings as default_settings
from payment_orchestrator.infrastructure.stores import WebhookEventStore
from payment_orchestrator.models import (
    PaymentInput,
    PaymentResult,
    WebhookDeliveryInput,
    WebhookDeliveryResult,
    WorkflowAlreadyStarted,
    WorkflowNotFound,
)
from payment_orchestrator.workflows.payment import PaymentWorkflow, utcnow
from payment_orchestrator.workflows.webhook import WebhookDeliveryWorkflow

logger = structlog.get_logger(__name__)


@dataclass
class _Instance:
    workflow: PaymentWorkflow | WebhookDeliveryWorkflow
    task: asyncio.Task
    finished_at: datetime | None = None


class WorkflowEngine:
    """
    Starts workflow instances and delivers signals to them.

    Workflow ids are derived from the business key (``payment-<order_id>``,
    ``webhook-<event_id>``), and an id cannot be started again while its
    instance is tracked, which gives at-most-once orchestration per order and
    per webhook event within the retention window.
    """

    def __init__(
        self,
        activities: PaymentActivities,
        webhook_transport: WebhookTransport,
        webhook_store: WebhookEventStore,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self.activities = activities
        self.webhook_transport = webhook_transport
        self.webhook_store = webhook_store
        self.settings = settings or default_settings
        self._sleep = sleep
        self._now = now
        self._instances: dict[str, _Instance] = {}

    def _start(self, workflow_id: str, workflow: PaymentWorkflow | WebhookDeliveryWorkflow) -> str:
        self.evict_finished()
        if workflow_id in self._instances:
            raise WorkflowAlreadyStarted(f"Workflow {workflow_id} already started")

        task = asyncio.create_task(workflow.run(), name=workflow_id)
        instance = _Instance(workflow=workflow, task=task)
        task.add_done_callback(lambda _task: self._mark_finished(instance))
        self._instances[workflow_id] = instance
        logger.info("workflow_started", workflow_id=workflow_id, workflow_type=type(workflow).__name__)
        return workflow_id

    def _mark_finished(self, instance: _Instance) -> None:
        instance.finished_at = self._now()

    def evict_finished(self, retention_seconds: float | None = None) -> list[str]:
        """
        Drop workflows that finished more than ``retention_seconds`` ago.

        Defaults to ``settings.finished_workflow_retention_seconds``. Runs on
        every start, so the instance table only holds running workflows plus
        those finished within the window. Returns the evicted ids.
        """
        if retention_seconds is None:
            retention_seconds = self.settings.finished_workflow_retention_seconds
        cutoff = self._now() - timedelta(seconds=retention_seconds)
        evicted = [
            wid
            for wid, inst in self._instances.items()
            if inst.finished_at is not None and inst.finished_at <= cutoff
        ]
        for wid in evicted:
            del self._instances[wid]
        if evicted:
            logger.info("workflows_evicted", count=len(evicted), tracked=len(self._instances))
        return evicted

    def forget(self, workflow_id: str) -> bool:
        """Evict one finished workflow now. Returns False if it is still running."""
        instance = self._get(workflow_id)
        if not instance.task.done():
            return False
        del self._instances[workflow_id]
        logger.info("workflow_forgotten", workflow_id=workflow_id)
        return True

    async def start_payment(self, payment_input: PaymentInput) -> str:
        """Start the payment workflow for an order. Returns the workflow id."""
        payment_settings = self.settings.payment
        workflow_id = f"payment-{payment_input.order_id}"
        workflow = PaymentWorkflow(
            payment_input,
            self.activities,
            action_timeout_seconds=payment_settings.action_timeout_seconds,
            poll_interval_seconds=payment_settings.poll_interval_seconds,
            now=self._now,
            workflow_id=workflow_id,
        )
        return self._start(workflow_id, workflow)

    async def start_webhook_delivery(self, delivery_input: WebhookDeliveryInput) -> str:
        """Start delivery of one webhook event. Returns the workflow id."""
        workflow_id = f"webhook-{delivery_input.webhook_event_id}"
        workflow = WebhookDeliveryWorkflow(
            delivery_input,
            self.webhook_transport,
            self.webhook_store,
            policy=self.settings.webhook.to_policy(),
            sleep=self._sleep,
            now=self._now,
            workflow_id=workflow_id,
        )
        return self._start(workflow_id, workflow)

    def _get(self, workflow_id: str) -> _Instance:
        instance = self._instances.get(workflow_id)
        if instance is None:
            raise WorkflowNotFound(f"Workflow {workflow_id} not found")
        return instance

    async def signal(self, workflow_id: str, name: str, payload: dict[str, Any] | None = None) -> bool:
        """
        Deliver a named signal to one workflow.

        Returns:
            True if the workflow acted on the signal, False if it was ignored
            (already resolved or finished).

        Raises:
            WorkflowNotFound: No workflow with that id
            UnknownSignal: The workflow does not handle that signal
        """
        instance = self._get(workflow_id)
        accepted = instance.workflow.handle_signal(name, payload)
        logger.info("workflow_signalled", workflow_id=workflow_id, signal=name, accepted=accepted)
        return accepted

    async def result(self, workflow_id: str) -> PaymentResult | WebhookDeliveryResult:
        """Wait for a workflow to finish and return its result."""
        return await asyncio.shield(self._get(workflow_id).task)

    def describe(self, workflow_id: str) -> dict[str, Any]:
        """Snapshot of a workflow for status endpoints and debugging."""
        instance = self._get(workflow_id)
        workflow = instance.workflow
        description: dict[str, Any] = {
            "workflow_id": workflow_id,
            "workflow_type": type(workflow).__name__,
            "done": instance.task.done(),
        }
        if isinstance(workflow, PaymentWorkflow):
            description["phase"] = workflow.state.phase.value
            description["awaiting_since"] = workflow.state.awaiting_since
        else:
            description["attempts"] = workflow.attempts
        return description

    def running(self) -> list[str]:
        """Ids of workflows that have not finished yet."""
        return sorted(wid for wid, inst in self._instances.items() if not inst.task.done())

    async def shutdown(self) -> None:
        """Cancel unfinished workflows and wait for them to stop."""
        pending = [inst.task for inst in self._instances.values() if not inst.task.done()]
        logger.info("workflow_engine_stopping", running=len(pending))
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        logger.info("workflow_engine_stopped")
