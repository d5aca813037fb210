"""Error taxonomy for the optimization pipeline."""

from __future__ import annotations


class OptimizerError(Exception):
    """Base class for optimizer failures."""


class ValidationError(OptimizerError, ValueError):
    """Input rejected before any computation starts."""

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or [message]


class ProviderError(OptimizerError):
    """A distance provider could not produce a matrix."""
