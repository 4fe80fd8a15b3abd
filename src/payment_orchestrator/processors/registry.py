"""
Processor registry for resolving processor names to implementations.

A registry is an explicit object built once at process start and handed to
the call layer, rather than module-level state. Each processor module
registers itself through ``register_builtin_processors``; after startup the
registry is only read, so concurrent workflow instances can share it
without locking.
"""

from collections.abc import Iterator

import structlog

from payment_orchestrator.models.exceptions import DuplicateProcessor, ProcessorNotFound
from payment_orchestrator.processors.base import PaymentProcessor

logger = structlog.get_logger(__name__)


class ProcessorRegistry:
    """
    Maps processor names to ``PaymentProcessor`` implementations.

    There is deliberately no unregister operation: processors are wired at
    deployment time, not swapped at runtime.
    """

    def __init__(self) -> None:
        self._processors: dict[str, PaymentProcessor] = {}

    def register(self, processor: PaymentProcessor, name: str | None = None) -> None:
        """
        Register a processor under ``name`` (defaults to ``processor.name``).

        Raises:
            TypeError: If ``processor`` is not a PaymentProcessor
            DuplicateProcessor: If the name is already registered. The first
                registration stays active.
        """
        if not isinstance(processor, PaymentProcessor):
            raise TypeError(
                f"{type(processor).__name__} must inherit from PaymentProcessor"
            )

        key = name or processor.name
        if key in self._processors:
            raise DuplicateProcessor(key)

        self._processors[key] = processor
        logger.info(
            "processor_registered",
            processor_name=key,
            processor_class=type(processor).__name__,
        )

    def resolve(self, name: str) -> PaymentProcessor:
        """
        Return the processor registered under ``name``.

        Raises:
            ProcessorNotFound: If no processor has that name; the message lists
                every registered name.
        """
        processor = self._processors.get(name)
        if processor is None:
            raise ProcessorNotFound(name, self._processors.keys())
        return processor

    def list(self) -> list[str]:
        """Get registered processor names (sorted)."""
        return sorted(self._processors)

    def has(self, name: str) -> bool:
        """Membership check that never raises."""
        return name in self._processors

    def __contains__(self, name: object) -> bool:
        return name in self._processors

    def __len__(self) -> int:
        return len(self._processors)

    def __iter__(self) -> Iterator[str]:
        return iter(self.list())


def register_builtin_processors(registry: ProcessorRegistry) -> ProcessorRegistry:
    """Register the processors shipped with this package."""
    from payment_orchestrator.processors.mock_processor import MockProcessor

    registry.register(MockProcessor())
    return registry


def build_registry() -> ProcessorRegistry:
    """Create a registry populated with the built-in processors."""
    return register_builtin_processors(ProcessorRegistry())
