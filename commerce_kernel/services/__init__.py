"""Kernel services - imperative shell infrastructure."""

from commerce_kernel.services.sequence_service import SequenceCounter, SequenceService

__all__ = ["SequenceCounter", "SequenceService"]
