"""Kernel services: infrastructure shared by the domain modules."""

from backoffice_kernel.services.sequence_service import SequenceCounter, SequenceService

__all__ = ["SequenceCounter", "SequenceService"]
