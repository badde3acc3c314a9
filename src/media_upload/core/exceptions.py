"""
Exception classes for Media Upload.

Every failure of the upload engine is raised as a subclass of
``UploadEngineError``. Transfer failures carry the protocol codes the
retry and failover layer needs to classify them.
"""

from typing import Any, Dict, Optional


class UploadEngineError(Exception):
    """Base exception for all Media Upload errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class ConfigurationError(UploadEngineError):
    """Raised for configuration-related errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ValidationError(UploadEngineError):
    """Raised for input validation errors."""

    def __init__(self, field: str, value: Any, message: str) -> None:
        details = {"field": field, "value": value}
        super().__init__(f"Validation error for {field}: {message}", details)
        self.field = field
        self.value = value


class PlanningError(UploadEngineError):
    """Raised when a part plan cannot be built for an upload."""


class TooManyPartsError(PlanningError):
    """Raised when an upload would need more parts than the protocol allows."""

    def __init__(self, total_size: int, chunk_size: int, max_parts: int) -> None:
        super().__init__(
            f"parts over {max_parts}",
            {"total_size": total_size, "chunk_size": chunk_size},
        )
        self.total_size = total_size
        self.chunk_size = chunk_size
        self.max_parts = max_parts


class PartCountMismatchError(PlanningError):
    """Raised when pre-signed part URLs do not match the local partition."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            "mismatch part upload", {"expected": expected, "actual": actual}
        )
        self.expected = expected
        self.actual = actual


class TransferError(UploadEngineError):
    """Raised when a data-plane request fails.

    ``transport_status`` is the HTTP-level status (500 for connection
    failures), ``service_code`` and ``service_sub_code`` come from the
    error object of the storage response envelope.
    """

    def __init__(
        self,
        message: str,
        transport_status: Optional[int] = None,
        service_code: Optional[int] = None,
        service_sub_code: Optional[int] = None,
        request_id: Optional[str] = None,
    ) -> None:
        details = {
            key: value
            for key, value in (
                ("transport_status", transport_status),
                ("service_code", service_code),
                ("service_sub_code", service_sub_code),
                ("request_id", request_id),
            )
            if value
        }
        super().__init__(message, details)
        self.transport_status = transport_status
        self.service_code = service_code
        self.service_sub_code = service_sub_code
        self.request_id = request_id

    @property
    def retryable(self) -> bool:
        """Whether the host-level retry policy may try this request again."""
        if self.service_code:
            return self.service_code >= 5000
        return (self.transport_status or 0) >= 500


class IntegrityError(UploadEngineError):
    """Raised when a storage-reported checksum differs from the local one."""

    def __init__(self, expected: str, actual: Optional[str]) -> None:
        super().__init__(
            "integrity check failed", {"expected": expected, "actual": actual}
        )
        self.expected = expected
        self.actual = actual


class ControlPlaneError(UploadEngineError):
    """Raised when the control-plane API rejects or fails a call."""

    def __init__(
        self,
        message: str,
        request_id: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        details = {"request_id": request_id} if request_id else {}
        super().__init__(message, details)
        self.request_id = request_id
        self.status_code = status_code


class UploadFailedError(UploadEngineError):
    """Raised by the upload facade when an upload cannot be completed.

    ``response`` holds a best-effort commit response carrying whatever
    request id was obtained, so callers can log it for support.
    """

    def __init__(
        self,
        message: str,
        phase: str,
        request_id: Optional[str] = None,
        response: Any = None,
    ) -> None:
        details = {"phase": phase}
        if request_id:
            details["request_id"] = request_id
        super().__init__(message, details)
        self.phase = phase
        self.request_id = request_id
        self.response = response
