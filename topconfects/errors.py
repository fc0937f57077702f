# File: topconfects/errors.py
# Location: topconfects/topconfects/errors.py
"""
Exception classes for topconfects.

All errors raised deliberately by the package derive from ConfectsError so
callers can catch them in one place. Each concrete class also derives from
the closest builtin (ValueError, ImportError) so generic handlers keep
working.
"""

from typing import Dict, Optional


class ConfectsError(Exception):
    """Base exception for all topconfects errors."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        """Initialize confects error.

        Parameters
        ----------
        message : str
            Error message
        details : dict, optional
            Additional error details
        """
        super().__init__(message)
        self.details = details or {}


class LengthMismatchError(ConfectsError, ValueError):
    """Raised when vector arguments cannot be broadcast to a common length."""

    def __init__(self, lengths: Dict[str, int], n: int):
        """Initialize length mismatch error."""
        shown = ", ".join(f"{name}={length}" for name, length in lengths.items())
        message = f"Arguments must have length 1 or {n}, got: {shown}"
        super().__init__(message, {"lengths": dict(lengths), "n": n})


class InvalidArgumentError(ConfectsError, ValueError):
    """Raised when a parameter is malformed or out of range."""

    def __init__(self, message: str, argument: Optional[str] = None):
        """Initialize invalid argument error."""
        super().__init__(message, {"argument": argument})
        self.argument = argument


class DependencyMissingError(ConfectsError, ImportError):
    """Raised when an optional modelling dependency (rpy2, edgeR) is unavailable."""

    def __init__(self, dependency: str, message: str):
        """Initialize dependency missing error."""
        super().__init__(message, {"dependency": dependency})
        self.dependency = dependency


class ProviderError(ConfectsError):
    """Raised when the p-value provider fails during the magnitude search."""

    def __init__(self, magnitude: float, original_error: Exception):
        """Initialize provider error."""
        message = f"p-value provider failed at magnitude {magnitude:g}: {original_error}"
        super().__init__(
            message,
            {
                "magnitude": magnitude,
                "original_error": str(original_error),
                "error_type": type(original_error).__name__,
            },
        )
        self.magnitude = magnitude
        self.original_error = original_error
