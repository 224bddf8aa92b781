"""Exception hierarchy for the rapprochement engine.

Configuration problems are caller programming errors and are raised loudly.
Data-quality problems on individual records are never raised: they are
absorbed into lower scores or reported as anomalies.

Usage:
    from rapprochement.exceptions import ConfigurationError

    try:
        config = MatchingConfig.from_mapping(raw)
    except ConfigurationError as e:
        logger.error("invalid_matching_config", error=str(e), context=e.context)
"""

from __future__ import annotations

from typing import Any


class RapprochementError(Exception):
    """Base exception for all rapprochement errors.

    Attributes:
        message: Human-readable error message
        context: Additional context for debugging (dict)
        original_error: Original exception if wrapped
    """

    def __init__(
        self,
        message: str,
        *,
        context: dict[str, Any] | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.original_error = original_error

    def __str__(self) -> str:
        """Format exception with context for logging."""
        base = self.message
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base = f"{base} ({ctx_str})"
        if self.original_error:
            base = f"{base} [caused by: {type(self.original_error).__name__}]"
        return base

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, context={self.context!r})"


# =============================================================================
# Validation & Configuration Errors
# =============================================================================


class ValidationError(RapprochementError):
    """Raised when a caller hands the engine something structurally unusable.

    Not used for bad values inside records (those degrade scores instead).
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        constraint: str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if field:
            context["field"] = field
        if value is not None:
            context["value"] = str(value)[:100]
        if constraint:
            context["constraint"] = constraint
        kwargs["context"] = context
        super().__init__(message, **kwargs)


class ConfigurationError(RapprochementError):
    """Raised when a MatchingConfig is out of range or inconsistent."""

    def __init__(
        self,
        message: str,
        *,
        setting: str | None = None,
        expected: str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if setting:
            context["setting"] = setting
        if expected:
            context["expected"] = expected
        kwargs["context"] = context
        super().__init__(message, **kwargs)


# =============================================================================
# Engine Errors
# =============================================================================


class MatchingError(RapprochementError):
    """Raised when a matching run cannot be carried out."""


class SnapshotError(RapprochementError):
    """Raised when a CLI snapshot file cannot be read or decoded."""

    def __init__(
        self,
        message: str,
        *,
        path: str | None = None,
        section: str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if path:
            context["path"] = path
        if section:
            context["section"] = section
        kwargs["context"] = context
        super().__init__(message, **kwargs)


# =============================================================================
# Utility Functions
# =============================================================================


def wrap_exception(
    error: Exception,
    message: str,
    *,
    exception_class: type[RapprochementError] = RapprochementError,
    **context: Any,
) -> RapprochementError:
    """Wrap an external exception in the rapprochement hierarchy.

    Example:
        try:
            config = MatchingConfig(**overrides)
        except pydantic.ValidationError as e:
            raise wrap_exception(
                e,
                "Invalid matching configuration",
                exception_class=ConfigurationError,
                errors=e.error_count(),
            ) from e
    """
    return exception_class(
        message,
        context=context,
        original_error=error,
    )


__all__ = [
    "RapprochementError",
    "ValidationError",
    "ConfigurationError",
    "MatchingError",
    "SnapshotError",
    "wrap_exception",
]
