"""Payment Orchestrator: durable payment and webhook delivery workflows."""

__version__ = "0.1.0"
