"""
Payment processor integrations.

- base.PaymentProcessor: Abstract capability set every processor implements
- registry.ProcessorRegistry: Name -> implementation lookup used by the call layer
- mock_processor.MockProcessor: Token-driven processor for development and tests
"""

from payment_orchestrator.processors.base import PaymentProcessor
from payment_orchestrator.processors.mock_processor import MockProcessor
from payment_orchestrator.processors.registry import (
    ProcessorRegistry,
    build_registry,
    register_builtin_processors,
)

__all__ = [
    "MockProcessor",
    "PaymentProcessor",
    "ProcessorRegistry",
    "build_registry",
    "register_builtin_processors",
]
