"""Source domain services."""

from .resolution import ListSourceReconciler, ResolutionSettings

__all__ = ["ListSourceReconciler", "ResolutionSettings"]
