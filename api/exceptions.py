"""Custom exceptions and error handling."""

from typing import Any

from fastapi import status


class CitabilityError(Exception):
    """Base exception for the citation engine."""

    def __init__(
        self,
        message: str,
        code: str = "error",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class NotFoundError(CitabilityError):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str | None = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} '{identifier}' not found"
        super().__init__(
            message=message,
            code="not_found",
            status_code=status.HTTP_404_NOT_FOUND,
        )


class ValidationError(CitabilityError):
    """Validation error."""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(
            message=message,
            code="validation_error",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
        )


class ConfigurationError(CitabilityError):
    """Settings could not be loaded or merged."""

    def __init__(self, message: str):
        super().__init__(message=message, code="configuration_error")


class NoProvidersEnabledError(CitabilityError):
    """No answer provider is available, so no probing can happen."""

    def __init__(
        self, message: str = "No answer providers enabled. Configure at least one API key."
    ):
        super().__init__(
            message=message,
            code="no_providers_enabled",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )


class EntityResolutionError(CitabilityError):
    """An observed name matches several canonical entities and needs a decision."""

    def __init__(self, name: str, candidates: list[str]):
        self.name = name
        self.candidates = candidates
        super().__init__(
            message=f"'{name}' matches {len(candidates)} entities: {', '.join(candidates)}",
            code="resolution_required",
            status_code=status.HTTP_409_CONFLICT,
            details={"name": name, "candidates": candidates},
        )
