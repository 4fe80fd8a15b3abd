"""Payment domain models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class PaymentStatus(str, Enum):
    """Status of a payment as reported by a processor or the orchestrator."""

    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    FAILED = "failed"
    PENDING = "pending"
    REQUIRES_ACTION = "requires_action"


class OrderStatus(str, Enum):
    """Persisted order status values."""

    PENDING = "pending"
    REQUIRES_ACTION = "requires_action"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RefundStatus(str, Enum):
    """Refund status."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class PaymentMethodType(str, Enum):
    """Supported payment method families."""

    CARD = "card"
    UPI = "upi"
    NETBANKING = "netbanking"
    WALLET = "wallet"


@dataclass(frozen=True)
class Customer:
    """Optional customer descriptor forwarded to the processor."""

    id: str | None = None
    email: str | None = None
    name: str | None = None


@dataclass(frozen=True)
class PaymentMethod:
    """Optional payment method descriptor (tokenized, never raw card data)."""

    type: PaymentMethodType
    token: str | None = None


@dataclass(frozen=True)
class PaymentInput:
    """
    Input for one payment orchestration run.

    Immutable once the orchestration starts. The amount is in minor units
    (e.g., 1000 = $10.00) and the currency is an ISO 4217 code.
    """

    order_id: str
    merchant_id: str
    amount: int
    currency: str
    processor: str
    return_url: str | None = None
    cancel_url: str | None = None
    customer: Customer | None = None
    payment_method: PaymentMethod | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate amount and currency, normalizing the currency code."""
        if not self.order_id:
            raise ValueError("order_id is required")
        if not self.processor:
            raise ValueError("processor is required")
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise ValueError("amount must be an integer in minor units")
        if self.amount <= 0:
            raise ValueError("amount must be positive")
        if len(self.currency) != 3 or not self.currency.isalpha():
            raise ValueError(f"Invalid currency code: {self.currency!r}")
        object.__setattr__(self, "currency", self.currency.upper())


@dataclass
class PaymentResult:
    """
    Result of a processor call or of a whole payment orchestration.

    Processors return one per call; the orchestrator returns exactly one as
    its terminal value.
    """

    success: bool
    status: PaymentStatus
    processor_order_id: str | None = None
    processor_transaction_id: str | None = None
    redirect_url: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    metadata: dict[str, Any] | None = None

    @classmethod
    def failure(cls, error_code: str, error_message: str | None = None) -> "PaymentResult":
        """Build a failed result carrying an error code."""
        return cls(
            success=False,
            status=PaymentStatus.FAILED,
            error_code=error_code,
            error_message=error_message,
        )


@dataclass(frozen=True)
class RefundInput:
    """Request to refund part or all of a captured transaction."""

    order_id: str
    transaction_id: str
    amount: int
    reason: str | None = None

    def __post_init__(self) -> None:
        if self.amount <= 0:
            raise ValueError("refund amount must be positive")


@dataclass
class RefundResult:
    """Result of a refund call."""

    success: bool
    status: RefundStatus
    refund_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class ProcessorConfig:
    """Per-merchant processor configuration with decrypted credentials."""

    merchant_id: str
    processor: str
    test_mode: bool = True
    credentials: dict[str, str] = field(default_factory=dict)
