"""
Centralized exception hierarchy for Niobium.

Every fatal condition of a deployment run maps to one of these types so the
CLI can report it and pick an exit code. A missing remote object is not an
error and never raises.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

logger = logging.getLogger(__name__)


# =============================================================================
# Base Exception
# =============================================================================


class NiobiumError(RuntimeError):
    """
    Base exception for all Niobium errors.

    Attributes:
        message: Human-readable error message.
        detail: Additional error details (optional).
        error_code: Machine-readable error code.
        run_id: Identifier of the deployment run (optional).
    """

    def __init__(
        self,
        message: str,
        *,
        detail: str | None = None,
        error_code: str | None = None,
        run_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail
        self.error_code = error_code or self._default_error_code()
        self.run_id = run_id or self._generate_run_id()

    def _default_error_code(self) -> str:
        """Generate default error code from class name."""
        return f"niobium_{self.__class__.__name__.lower()}"

    def _generate_run_id(self) -> str:
        """Generate run ID if not provided."""
        return str(uuid.uuid4())

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a structured report."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.detail:
            result["detail"] = self.detail
        if self.run_id:
            result["run_id"] = self.run_id
        return result

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}: {self.detail}"
        return self.message

    def log(self, level: int = logging.ERROR) -> None:
        """Log the exception with structured data."""
        logger.log(
            level,
            self.message,
            extra={
                "error_code": self.error_code,
                "detail": self.detail,
                "run_id": self.run_id,
                "exception_type": self.__class__.__name__,
            },
        )


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(NiobiumError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        *,
        setting_name: str | None = None,
        run_id: str | None = None,
    ) -> None:
        self.setting_name = setting_name
        detail = f"Missing or invalid setting: {setting_name}" if setting_name else None
        super().__init__(
            message,
            detail=detail,
            error_code="configuration_error",
            run_id=run_id,
        )


# =============================================================================
# Host Application Errors
# =============================================================================


class AppLoadError(NiobiumError):
    """Raised when the host application cannot be loaded or never starts listening."""

    def __init__(
        self,
        message: str,
        *,
        target: str | None = None,
        run_id: str | None = None,
    ) -> None:
        self.target = target
        super().__init__(
            message,
            detail=f"Target: {target}" if target else None,
            error_code="app_load_error",
            run_id=run_id,
        )


class RouteDiscoveryError(NiobiumError):
    """Raised when discovered routes cannot be expanded."""

    def __init__(
        self,
        message: str,
        *,
        prefix: str | None = None,
        directory: str | None = None,
        run_id: str | None = None,
    ) -> None:
        self.prefix = prefix
        self.directory = directory
        detail_parts = []
        if prefix:
            detail_parts.append(f"Mount: {prefix}")
        if directory:
            detail_parts.append(f"Directory: {directory}")
        detail = "; ".join(detail_parts) if detail_parts else None
        super().__init__(
            message,
            detail=detail,
            error_code="route_discovery_error",
            run_id=run_id,
        )


class ServerStartError(NiobiumError):
    """Raised when the ephemeral server fails to start."""

    def __init__(
        self,
        message: str = "Ephemeral server failed to start",
        *,
        timeout_seconds: float | None = None,
        run_id: str | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(
            message,
            detail=f"Timeout after {timeout_seconds}s" if timeout_seconds else None,
            error_code="server_start_error",
            run_id=run_id,
        )


# =============================================================================
# External Service Errors
# =============================================================================


class ExternalServiceError(NiobiumError):
    """Base class for failures talking to the snapshot server, S3 or CloudFront."""

    def __init__(
        self,
        message: str,
        *,
        service: str | None = None,
        reason: str | None = None,
        error_code: str = "external_service_error",
        run_id: str | None = None,
    ) -> None:
        self.service = service
        self.reason = reason
        detail_parts = []
        if service:
            detail_parts.append(f"Service: {service}")
        if reason:
            detail_parts.append(reason)
        detail = "; ".join(detail_parts) if detail_parts else None
        super().__init__(
            message,
            detail=detail,
            error_code=error_code,
            run_id=run_id,
        )


class FetchError(ExternalServiceError):
    """Raised when a route cannot be fetched from the ephemeral server."""

    def __init__(
        self,
        route: str,
        *,
        reason: str | None = None,
        run_id: str | None = None,
    ) -> None:
        self.route = route
        super().__init__(
            f"Failed to fetch route {route!r}",
            service="snapshot",
            reason=reason,
            error_code="fetch_error",
            run_id=run_id,
        )


class RemoteStateError(ExternalServiceError):
    """Raised when remote object metadata cannot be read."""

    def __init__(
        self,
        key: str,
        *,
        reason: str | None = None,
        run_id: str | None = None,
    ) -> None:
        self.key = key
        super().__init__(
            f"Failed to read remote state for {key!r}",
            service="s3",
            reason=reason,
            error_code="remote_state_error",
            run_id=run_id,
        )


class UploadError(ExternalServiceError):
    """Raised when an object upload fails."""

    def __init__(
        self,
        key: str,
        *,
        reason: str | None = None,
        run_id: str | None = None,
    ) -> None:
        self.key = key
        super().__init__(
            f"Failed to upload {key!r}",
            service="s3",
            reason=reason,
            error_code="upload_error",
            run_id=run_id,
        )


class InvalidationError(ExternalServiceError):
    """Raised when the cache invalidation request fails."""

    def __init__(
        self,
        distribution_id: str,
        *,
        reason: str | None = None,
        run_id: str | None = None,
    ) -> None:
        self.distribution_id = distribution_id
        super().__init__(
            f"Failed to invalidate distribution {distribution_id!r}",
            service="cloudfront",
            reason=reason,
            error_code="invalidation_error",
            run_id=run_id,
        )


# =============================================================================
# Exit Code Helpers
# =============================================================================


def exception_to_exit_code(exc: BaseException) -> int:
    """
    Map exception to a process exit code.

    Args:
        exc: The exception to map.

    Returns:
        Nonzero exit code. Usage errors (2) are produced by argparse itself.
    """
    status_map = {
        ConfigurationError: 3,
        AppLoadError: 4,
        RouteDiscoveryError: 4,
        ServerStartError: 5,
        ExternalServiceError: 6,
    }

    for exc_class, code in status_map.items():
        if isinstance(exc, exc_class):
            return code
    return 1
