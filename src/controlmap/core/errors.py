"""Exception hierarchy for the mapping engine."""

from __future__ import annotations

from typing import Optional


class ControlMapError(Exception):
    """Base exception for all controlmap errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class PreconditionError(ControlMapError):
    """A required precondition for an operation does not hold."""


class NotInitializedError(PreconditionError):
    """No text-generation capability has been attached to the engine."""


class NotReadyError(PreconditionError):
    """Control catalogs have not been loaded."""


class AlreadyLoadingError(PreconditionError):
    """A catalog load is already in flight."""


class EmptyBatchError(PreconditionError):
    """A processing job would contain no controls."""


class LoadError(ControlMapError):
    """A control catalog could not be fetched or parsed."""

    def __init__(self, message: str, source: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.source = source
        self.details.setdefault("source", source)


class GenerationError(ControlMapError):
    """The text-generation call failed or returned nothing."""

    def __init__(self, message: str, control_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.control_id = control_id
        self.details.setdefault("control_id", control_id)


class ParseError(ControlMapError):
    """Model output could not be coerced into correspondence candidates."""
