"""Base interface for payment processors."""

from abc import ABC, abstractmethod

from payment_orchestrator.models import (
    PaymentInput,
    PaymentResult,
    ProcessorConfig,
    RefundResult,
)


class PaymentProcessor(ABC):
    """
    Abstract base class for payment processor integrations.

    All payment processors (cards, UPI, wallets, etc.) must implement this
    capability set so the orchestrator can drive them interchangeably.

    Transient failures (5xx, timeouts, network errors) are raised as
    ``ProcessorTimeout`` and retried by the call site. Business outcomes such
    as declines are NOT exceptions: they return a result with
    ``success=False``.
    """

    #: Registry key for this processor.
    name: str

    @abstractmethod
    async def create_payment(
        self,
        payment_input: PaymentInput,
        config: ProcessorConfig,
    ) -> PaymentResult:
        """
        Create (and, where the processor supports it, confirm) a payment.

        Returns ``status=requires_action`` with a ``redirect_url`` when the
        customer must complete an extra step (3-D Secure, UPI collect, bank
        redirect) before the outcome is known.
        """
        pass

    @abstractmethod
    async def capture_payment(
        self,
        processor_order_id: str,
        amount: int,
        config: ProcessorConfig,
    ) -> PaymentResult:
        """Capture a previously authorized payment."""
        pass

    @abstractmethod
    async def refund_payment(
        self,
        processor_transaction_id: str,
        amount: int,
        config: ProcessorConfig,
    ) -> RefundResult:
        """Refund part or all of a captured transaction."""
        pass

    @abstractmethod
    async def get_payment_status(
        self,
        processor_order_id: str,
        config: ProcessorConfig,
    ) -> PaymentResult:
        """Fetch the processor's current view of a payment."""
        pass
