"""
Call layer between the workflows and the outside world.

Every processor call and order-status update goes through the retry
executor. Instead of letting errors unwind into the workflow, each call
returns a ``CallOutcome`` whose ``kind`` says what happened, and the workflow
branches on it:

- OK: the call succeeded, ``value`` holds the result
- EXHAUSTED: a transient failure outlived the retry ceiling
- CONFIGURATION_ERROR: unknown processor or missing merchant config (never retried)
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

import structlog

from payment_orchestrator.models import (
    ExternalCallFailed,
    OrderStatus,
    PaymentInput,
    PaymentResult,
    ProcessorConfig,
    RefundInput,
    RefundResult,
    RegistryError,
)
from payment_orchestrator.processors.base import PaymentProcessor
from payment_orchestrator.processors.registry import ProcessorRegistry
from payment_orchestrator.retry import RetryExecutor, RetryPolicy
from payment_orchestrator.infrastructure.stores import OrderStore, ProcessorConfigProvider

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CallOutcomeKind(str, Enum):
    """How an external call ended."""

    OK = "ok"
    EXHAUSTED = "exhausted"
    CONFIGURATION_ERROR = "configuration_error"


@dataclass(frozen=True)
class CallOutcome(Generic[T]):
    """Result-or-error value returned by every call-layer method."""

    kind: CallOutcomeKind
    value: T | None = None
    error: BaseException | None = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.kind == CallOutcomeKind.OK

    @property
    def message(self) -> str:
        """Human-readable error message (empty for OK outcomes)."""
        if self.error is None:
            return ""
        if isinstance(self.error, ExternalCallFailed):
            return str(self.error.last_error)
        return str(self.error)


class PaymentActivities:
    """
    Retried external calls used by the payment workflow.

    Args:
        registry: Processor registry populated at startup
        config_provider: Loads merchant processor configuration
        order_store: Persists order status changes
        executor: Retry executor (tests inject one with an instant sleep)
        processor_policy: Retry policy for processor and config calls
        order_update_policy: Retry policy for order status updates
    """

    def __init__(
        self,
        registry: ProcessorRegistry,
        config_provider: ProcessorConfigProvider,
        order_store: OrderStore,
        executor: RetryExecutor | None = None,
        processor_policy: RetryPolicy | None = None,
        order_update_policy: RetryPolicy | None = None,
    ) -> None:
        self.registry = registry
        self.config_provider = config_provider
        self.order_store = order_store
        self.executor = executor or RetryExecutor()
        # Wiring errors indicate a deployment defect, so they are never retried.
        self.processor_policy = (processor_policy or RetryPolicy()).with_non_retryable(RegistryError)
        self.order_update_policy = order_update_policy or RetryPolicy()

    async def _call(
        self,
        operation_name: str,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy,
        **log_context: object,
    ) -> CallOutcome[T]:
        try:
            value = await self.executor.execute(
                operation,
                policy,
                operation_name=operation_name,
                **log_context,
            )
        except RegistryError as e:
            logger.error(
                "processor_configuration_error",
                operation=operation_name,
                error=str(e),
                **log_context,
            )
            return CallOutcome(kind=CallOutcomeKind.CONFIGURATION_ERROR, error=e, attempts=1)
        except ExternalCallFailed as e:
            return CallOutcome(kind=CallOutcomeKind.EXHAUSTED, error=e, attempts=e.attempts)

        return CallOutcome(kind=CallOutcomeKind.OK, value=value)

    async def _prepare(
        self,
        merchant_id: str,
        processor_name: str,
    ) -> CallOutcome[tuple[PaymentProcessor, ProcessorConfig]]:
        """Resolve the processor and load the merchant's config for it."""
        try:
            processor = self.registry.resolve(processor_name)
        except RegistryError as e:
            logger.error(
                "processor_resolution_failed",
                processor_name=processor_name,
                registered=self.registry.list(),
                error=str(e),
            )
            return CallOutcome(kind=CallOutcomeKind.CONFIGURATION_ERROR, error=e)

        config_outcome = await self._call(
            "get_processor_config",
            lambda: self.config_provider.get_processor_config(merchant_id, processor_name),
            self.processor_policy,
            merchant_id=merchant_id,
            processor_name=processor_name,
        )
        if not config_outcome.ok:
            return CallOutcome(
                kind=config_outcome.kind,
                error=config_outcome.error,
                attempts=config_outcome.attempts,
            )
        return CallOutcome(kind=CallOutcomeKind.OK, value=(processor, config_outcome.value))

    async def create_payment(self, payment_input: PaymentInput) -> CallOutcome[PaymentResult]:
        """Submit a payment to its processor."""
        prepared = await self._prepare(payment_input.merchant_id, payment_input.processor)
        if not prepared.ok:
            return prepared
        processor, config = prepared.value

        return await self._call(
            "create_payment",
            lambda: processor.create_payment(payment_input, config),
            self.processor_policy,
            order_id=payment_input.order_id,
            processor_name=payment_input.processor,
        )

    async def capture_payment(
        self,
        merchant_id: str,
        processor_name: str,
        processor_order_id: str,
        amount: int,
    ) -> CallOutcome[PaymentResult]:
        """Capture an authorized payment."""
        prepared = await self._prepare(merchant_id, processor_name)
        if not prepared.ok:
            return prepared
        processor, config = prepared.value

        return await self._call(
            "capture_payment",
            lambda: processor.capture_payment(processor_order_id, amount, config),
            self.processor_policy,
            processor_name=processor_name,
            processor_order_id=processor_order_id,
        )

    async def refund_payment(
        self,
        merchant_id: str,
        processor_name: str,
        refund_input: RefundInput,
    ) -> CallOutcome[RefundResult]:
        """Refund a captured transaction."""
        prepared = await self._prepare(merchant_id, processor_name)
        if not prepared.ok:
            return prepared
        processor, config = prepared.value

        return await self._call(
            "refund_payment",
            lambda: processor.refund_payment(refund_input.transaction_id, refund_input.amount, config),
            self.processor_policy,
            order_id=refund_input.order_id,
            processor_name=processor_name,
        )

    async def get_payment_status(
        self,
        merchant_id: str,
        processor_name: str,
        processor_order_id: str,
    ) -> CallOutcome[PaymentResult]:
        """Ask the processor for the current status of a payment."""
        prepared = await self._prepare(merchant_id, processor_name)
        if not prepared.ok:
            return prepared
        processor, config = prepared.value

        return await self._call(
            "get_payment_status",
            lambda: processor.get_payment_status(processor_order_id, config),
            self.processor_policy,
            processor_name=processor_name,
            processor_order_id=processor_order_id,
        )

    async def update_order_status(
        self,
        order_id: str,
        status: OrderStatus,
        processor_order_id: str | None = None,
        processor_transaction_id: str | None = None,
    ) -> CallOutcome[None]:
        """Persist an order status change."""
        outcome = await self._call(
            "update_order_status",
            lambda: self.order_store.update_order_status(
                order_id,
                status,
                processor_order_id=processor_order_id,
                processor_transaction_id=processor_transaction_id,
            ),
            self.order_update_policy,
            order_id=order_id,
            status=status.value,
        )
        if outcome.ok:
            logger.info(
                "order_status_updated",
                order_id=order_id,
                status=status.value,
                processor_order_id=processor_order_id,
            )
        return outcome
