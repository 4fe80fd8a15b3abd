"""Domain models for the Payment Orchestrator."""

from payment_orchestrator.models.exceptions import (
    DuplicateProcessor,
    ExternalCallFailed,
    InvalidTransition,
    OrchestrationCancelled,
    OrchestrationTimeout,
    OrchestratorError,
    ProcessorConfigNotFound,
    ProcessorNotFound,
    ProcessorTimeout,
    RegistryError,
    UnknownSignal,
    WorkflowAlreadyStarted,
    WorkflowError,
    WorkflowNotFound,
)
from payment_orchestrator.models.payment import (
    Customer,
    OrderStatus,
    PaymentInput,
    PaymentMethod,
    PaymentMethodType,
    PaymentResult,
    PaymentStatus,
    ProcessorConfig,
    RefundInput,
    RefundResult,
    RefundStatus,
)
from payment_orchestrator.models.webhook import (
    DeliveryResponse,
    WebhookDeliveryInput,
    WebhookDeliveryResult,
)

__all__ = [
    "Customer",
    "DeliveryResponse",
    "DuplicateProcessor",
    "ExternalCallFailed",
    "InvalidTransition",
    "OrchestrationCancelled",
    "OrchestrationTimeout",
    "OrchestratorError",
    "OrderStatus",
    "PaymentInput",
    "PaymentMethod",
    "PaymentMethodType",
    "PaymentResult",
    "PaymentStatus",
    "ProcessorConfig",
    "ProcessorConfigNotFound",
    "ProcessorNotFound",
    "ProcessorTimeout",
    "RefundInput",
    "RefundResult",
    "RefundStatus",
    "RegistryError",
    "UnknownSignal",
    "WebhookDeliveryInput",
    "WebhookDeliveryResult",
    "WorkflowAlreadyStarted",
    "WorkflowError",
    "WorkflowNotFound",
]
