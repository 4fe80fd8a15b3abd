"""
Payment workflow state machine.

The workflow's phase only changes through ``PaymentWorkflowState.transition_to``,
which enforces ``ALLOWED_TRANSITIONS``. While a payment is awaiting customer
action, three events compete to resolve it: a completion signal, a
cancellation signal and the deadline. Whichever is recorded first wins;
anything recorded later is ignored.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from payment_orchestrator.models import InvalidTransition, PaymentResult


class PaymentPhase(str, Enum):
    """Phases of one payment orchestration."""

    CREATED = "created"
    SUBMITTING = "submitting"
    FINALIZED = "finalized"
    AWAITING_ACTION = "awaiting_action"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


ALLOWED_TRANSITIONS: dict[PaymentPhase, set[PaymentPhase]] = {
    PaymentPhase.CREATED: {PaymentPhase.SUBMITTING, PaymentPhase.FAILED},
    PaymentPhase.SUBMITTING: {
        PaymentPhase.FINALIZED,
        PaymentPhase.AWAITING_ACTION,
        PaymentPhase.FAILED,
    },
    PaymentPhase.AWAITING_ACTION: {
        PaymentPhase.COMPLETED,
        PaymentPhase.FAILED,
        PaymentPhase.CANCELLED,
        PaymentPhase.TIMED_OUT,
    },
    PaymentPhase.FINALIZED: set(),
    PaymentPhase.COMPLETED: set(),
    PaymentPhase.FAILED: set(),
    PaymentPhase.CANCELLED: set(),
    PaymentPhase.TIMED_OUT: set(),
}

TERMINAL_PHASES = frozenset(phase for phase, targets in ALLOWED_TRANSITIONS.items() if not targets)


def validate_transition(current: PaymentPhase, new: PaymentPhase) -> None:
    """Raise when a transition is not allowed by the state machine."""
    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransition(f"Invalid transition: {current.value} -> {new.value}")


class SignalName(str, Enum):
    """Signals a running payment workflow accepts."""

    COMPLETE_PAYMENT = "complete_payment"
    CANCEL_PAYMENT = "cancel_payment"


class ResolutionKind(str, Enum):
    """What ended the awaiting-action wait."""

    COMPLETION = "completion"
    CANCELLATION = "cancellation"
    DEADLINE = "deadline"


@dataclass(frozen=True)
class CompletionPayload:
    """Payload of the completion signal."""

    success: bool
    processor_transaction_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CompletionPayload":
        if "success" not in data:
            raise ValueError("completion payload requires 'success'")
        return cls(
            success=bool(data["success"]),
            processor_transaction_id=data.get("processor_transaction_id")
            or data.get("processorTransactionId"),
        )


@dataclass(frozen=True)
class Resolution:
    """The first event that resolved the awaiting-action wait."""

    kind: ResolutionKind
    recorded_at: datetime
    payload: CompletionPayload | None = None


@dataclass
class PaymentWorkflowState:
    """Mutable state of one payment workflow instance."""

    phase: PaymentPhase = PaymentPhase.CREATED
    result: PaymentResult | None = None
    processor_order_id: str | None = None
    awaiting_since: datetime | None = None
    resolution: Resolution | None = None
    ignored_signals: list[ResolutionKind] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def transition_to(self, new: PaymentPhase, result: PaymentResult | None = None) -> None:
        """Move to ``new``, storing ``result`` when entering a terminal phase."""
        validate_transition(self.phase, new)
        self.phase = new
        if result is not None:
            self.result = result

    def enter_awaiting_action(self, processor_order_id: str | None, since: datetime) -> None:
        """Record the start of the wait; the deadline is measured from ``since``."""
        self.transition_to(PaymentPhase.AWAITING_ACTION)
        self.processor_order_id = processor_order_id
        self.awaiting_since = since

    def _record(self, resolution: Resolution) -> bool:
        if self.is_terminal or self.resolution is not None:
            self.ignored_signals.append(resolution.kind)
            return False
        self.resolution = resolution
        return True

    def record_completion(self, payload: CompletionPayload, now: datetime) -> bool:
        """Record a completion signal. Returns False if it was ignored."""
        return self._record(Resolution(ResolutionKind.COMPLETION, now, payload))

    def record_cancellation(self, now: datetime) -> bool:
        """Record a cancellation signal. Returns False if it was ignored."""
        return self._record(Resolution(ResolutionKind.CANCELLATION, now))

    def discard_resolution(self) -> ResolutionKind | None:
        """
        Move a signal recorded before the wait began to ``ignored_signals``.

        Used when the processor answers with a final status, so the wait the
        signal was meant to resolve never happens.
        """
        if self.resolution is None:
            return None
        kind = self.resolution.kind
        self.ignored_signals.append(kind)
        self.resolution = None
        return kind

    def record_deadline(self, now: datetime) -> bool:
        """Record that the deadline passed. Returns False if a signal got there first."""
        if self.phase != PaymentPhase.AWAITING_ACTION:
            raise InvalidTransition("deadline only applies while awaiting action")
        return self._record(Resolution(ResolutionKind.DEADLINE, now))
