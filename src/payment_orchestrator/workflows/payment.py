"""
Payment workflow.

Drives a single payment from submission to a terminal state:

1. Submit the payment to its processor (retried)
2. If the processor answers with anything but ``requires_action``, record the
   order status and return the processor's result
3. Otherwise record ``requires_action`` and wait for a completion signal, a
   cancellation signal or the deadline, whichever comes first
4. Record the outcome on the order and return it

``run()`` always returns a ``PaymentResult``. Every exit path, internal
errors included, leaves the order in a terminal persisted status.
"""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from payment_orchestrator.activities import PaymentActivities
from payment_orchestrator.models import (
    OrchestrationCancelled,
    OrchestrationTimeout,
    OrderStatus,
    PaymentInput,
    PaymentResult,
    PaymentStatus,
    UnknownSignal,
    WorkflowError,
)
from payment_orchestrator.workflows.state import (
    CompletionPayload,
    PaymentPhase,
    PaymentWorkflowState,
    ResolutionKind,
    SignalName,
)

logger = structlog.get_logger(__name__)

DEFAULT_ACTION_TIMEOUT_SECONDS = 15 * 60
DEFAULT_POLL_INTERVAL_SECONDS = 10.0


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentWorkflow:
    """
    One payment orchestration instance.

    Args:
        payment_input: The payment to process (immutable for the run)
        activities: Retried call layer for processors and order updates
        action_timeout_seconds: How long to wait for customer action
        poll_interval_seconds: Maximum time between deadline checks while waiting
        now: Clock used for the deadline (tests inject a fake one)
        workflow_id: Identifier used in logs; defaults to ``payment-<order_id>``
        state: Previously recorded state to resume from (e.g. after a restart
            mid-wait); the original wait start time is kept, so the deadline
            does not move.
    """

    def __init__(
        self,
        payment_input: PaymentInput,
        activities: PaymentActivities,
        action_timeout_seconds: float = DEFAULT_ACTION_TIMEOUT_SECONDS,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        now: Callable[[], datetime] = utcnow,
        workflow_id: str | None = None,
        state: PaymentWorkflowState | None = None,
    ) -> None:
        self.input = payment_input
        self.activities = activities
        self.action_timeout = timedelta(seconds=action_timeout_seconds)
        self.poll_interval_seconds = poll_interval_seconds
        self._now = now
        self.workflow_id = workflow_id or f"payment-{payment_input.order_id}"
        self.state = state or PaymentWorkflowState()
        self._wakeup = asyncio.Event()

    # Signals

    def complete_payment(self, success: bool, processor_transaction_id: str | None = None) -> bool:
        """Completion signal (3-D Secure, redirect and UPI flows)."""
        accepted = self.state.record_completion(
            CompletionPayload(success=success, processor_transaction_id=processor_transaction_id),
            self._now(),
        )
        self._log_signal(ResolutionKind.COMPLETION, accepted)
        if accepted:
            self._wakeup.set()
        return accepted

    def cancel_payment(self) -> bool:
        """Cancellation signal."""
        accepted = self.state.record_cancellation(self._now())
        self._log_signal(ResolutionKind.CANCELLATION, accepted)
        if accepted:
            self._wakeup.set()
        return accepted

    def handle_signal(self, name: str, payload: dict[str, Any] | None = None) -> bool:
        """Dispatch a named signal. Returns False if the signal was ignored."""
        if name == SignalName.COMPLETE_PAYMENT.value:
            completion = CompletionPayload.from_dict(payload or {})
            return self.complete_payment(completion.success, completion.processor_transaction_id)
        if name == SignalName.CANCEL_PAYMENT.value:
            return self.cancel_payment()
        raise UnknownSignal(f"Payment workflow does not handle signal {name!r}")

    def _log_signal(self, kind: ResolutionKind, accepted: bool) -> None:
        logger.info(
            "payment_signal_received" if accepted else "payment_signal_ignored",
            workflow_id=self.workflow_id,
            order_id=self.input.order_id,
            signal=kind.value,
            phase=self.state.phase.value,
        )

    # Run

    async def run(self) -> PaymentResult:
        """Run the workflow to a terminal state and return its result."""
        structlog.contextvars.bind_contextvars(
            workflow_id=self.workflow_id,
            order_id=self.input.order_id,
        )
        try:
            if self.state.is_terminal and self.state.result is not None:
                return self.state.result
            try:
                return await self._execute()
            except WorkflowError as e:
                return await self._fail_workflow(str(e))
            except Exception as e:
                logger.error(
                    "payment_workflow_unexpected_error",
                    phase=self.state.phase.value,
                    error=str(e),
                    exc_info=True,
                )
                return await self._fail_workflow(str(e) or type(e).__name__)
        finally:
            structlog.contextvars.unbind_contextvars("workflow_id", "order_id")

    async def _execute(self) -> PaymentResult:
        if self.state.phase == PaymentPhase.AWAITING_ACTION:
            logger.info(
                "payment_workflow_resumed",
                awaiting_since=self.state.awaiting_since.isoformat() if self.state.awaiting_since else None,
            )
            return await self._await_action()

        if self.state.phase == PaymentPhase.CREATED:
            self.state.transition_to(PaymentPhase.SUBMITTING)

        logger.info(
            "payment_workflow_started",
            merchant_id=self.input.merchant_id,
            processor_name=self.input.processor,
            amount=self.input.amount,
            currency=self.input.currency,
        )

        outcome = await self.activities.create_payment(self.input)
        if not outcome.ok:
            raise WorkflowError(outcome.message)

        result = outcome.value

        if result.status != PaymentStatus.REQUIRES_ACTION:
            return await self._finalize(result)

        await self._record_order(OrderStatus.REQUIRES_ACTION, processor_order_id=result.processor_order_id)

        self.state.enter_awaiting_action(result.processor_order_id, self._now())
        logger.info(
            "payment_awaiting_action",
            processor_order_id=result.processor_order_id,
            redirect_url=result.redirect_url,
            timeout_seconds=self.action_timeout.total_seconds(),
        )
        return await self._await_action()

    async def _record_order(
        self,
        status: OrderStatus,
        processor_order_id: str | None = None,
        processor_transaction_id: str | None = None,
    ) -> None:
        update = await self.activities.update_order_status(
            self.input.order_id,
            status,
            processor_order_id=processor_order_id,
            processor_transaction_id=processor_transaction_id,
        )
        if not update.ok:
            raise WorkflowError(update.message)

    async def _finalize(self, result: PaymentResult) -> PaymentResult:
        await self._record_order(
            OrderStatus(result.status.value),
            processor_order_id=result.processor_order_id,
            processor_transaction_id=result.processor_transaction_id,
        )

        discarded = self.state.discard_resolution()
        if discarded is not None:
            logger.info(
                "payment_signal_ignored",
                workflow_id=self.workflow_id,
                order_id=self.input.order_id,
                signal=discarded.value,
                phase=self.state.phase.value,
            )
        self.state.transition_to(PaymentPhase.FINALIZED, result)
        logger.info(
            "payment_workflow_finalized",
            status=result.status.value,
            success=result.success,
            processor_order_id=result.processor_order_id,
        )
        return result

    async def _wait_for_resolution(self) -> None:
        """Block until a signal is recorded or the deadline passes."""
        deadline = self.state.awaiting_since + self.action_timeout

        while self.state.resolution is None:
            remaining = (deadline - self._now()).total_seconds()
            if remaining <= 0:
                self.state.record_deadline(self._now())
                return

            self._wakeup.clear()
            try:
                await asyncio.wait_for(
                    self._wakeup.wait(),
                    timeout=min(remaining, self.poll_interval_seconds),
                )
            except asyncio.TimeoutError:
                pass

    async def _wait_for_completion(self) -> CompletionPayload:
        """
        Wait for customer action and return the completion payload.

        Raises:
            OrchestrationCancelled: The cancellation signal won
            OrchestrationTimeout: The deadline passed first
        """
        await self._wait_for_resolution()
        resolution = self.state.resolution

        if resolution.kind == ResolutionKind.CANCELLATION:
            raise OrchestrationCancelled("Payment cancelled")
        if resolution.kind == ResolutionKind.DEADLINE:
            raise OrchestrationTimeout("Payment timeout")
        return resolution.payload

    async def _await_action(self) -> PaymentResult:
        try:
            payload = await self._wait_for_completion()
        except OrchestrationCancelled as e:
            await self._record_order(OrderStatus.CANCELLED)
            result = PaymentResult.failure("cancelled", str(e))
            self.state.transition_to(PaymentPhase.CANCELLED, result)
            logger.info("payment_cancelled")
            return result
        except OrchestrationTimeout as e:
            await self._record_order(OrderStatus.FAILED)
            result = PaymentResult.failure("timeout", str(e))
            self.state.transition_to(PaymentPhase.TIMED_OUT, result)
            logger.warning(
                "payment_action_timed_out",
                timeout_seconds=self.action_timeout.total_seconds(),
            )
            return result

        status = PaymentStatus.CAPTURED if payload.success else PaymentStatus.FAILED
        await self._record_order(
            OrderStatus(status.value),
            processor_order_id=self.state.processor_order_id,
            processor_transaction_id=payload.processor_transaction_id,
        )

        result = PaymentResult(
            success=payload.success,
            status=status,
            processor_order_id=self.state.processor_order_id,
            processor_transaction_id=payload.processor_transaction_id,
        )
        self.state.transition_to(
            PaymentPhase.COMPLETED if payload.success else PaymentPhase.FAILED,
            result,
        )
        logger.info(
            "payment_action_completed",
            success=payload.success,
            processor_transaction_id=payload.processor_transaction_id,
        )
        return result

    async def _fail_workflow(self, message: str) -> PaymentResult:
        """Mark the order failed and end the run with a ``workflow_error`` result."""
        result = PaymentResult.failure("workflow_error", message)

        try:
            update = await self.activities.update_order_status(self.input.order_id, OrderStatus.FAILED)
            if not update.ok:
                logger.error("failed_to_mark_order_failed", error=update.message)
        except Exception as record_error:
            logger.error(
                "failed_to_mark_order_failed",
                error=str(record_error),
                exc_info=True,
            )

        if not self.state.is_terminal:
            self.state.transition_to(PaymentPhase.FAILED, result)
        logger.error("payment_workflow_failed", error_code="workflow_error", error=message)
        return result
