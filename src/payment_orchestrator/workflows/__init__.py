"""Payment and webhook delivery workflows."""

from payment_orchestrator.workflows.payment import PaymentWorkflow
from payment_orchestrator.workflows.state import (
    ALLOWED_TRANSITIONS,
    TERMINAL_PHASES,
    CompletionPayload,
    PaymentPhase,
    PaymentWorkflowState,
    ResolutionKind,
    SignalName,
    validate_transition,
)
from payment_orchestrator.workflows.webhook import WebhookDeliveryWorkflow

__all__ = [
    "ALLOWED_TRANSITIONS",
    "TERMINAL_PHASES",
    "CompletionPayload",
    "PaymentPhase",
    "PaymentWorkflow",
    "PaymentWorkflowState",
    "ResolutionKind",
    "SignalName",
    "WebhookDeliveryWorkflow",
    "validate_transition",
]
