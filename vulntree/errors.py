from typing import Any, Dict, Optional


class VulntreeError(Exception):
    """Base error carrying the HTTP-style status a caller should surface."""

    status_code = 500
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        response: Dict[str, Any] = {
            "error": {
                "code": self.error_code,
                "message": self.message,
            }
        }
        if self.details:
            response["error"]["details"] = self.details
        return response


class InvalidInputError(VulntreeError):
    status_code = 400
    error_code = "INVALID_INPUT"

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(
            f"Invalid {field}: {reason}",
            details={"field": field, "reason": reason},
        )


class PackageNotFoundError(VulntreeError):
    status_code = 404
    error_code = "PACKAGE_NOT_FOUND"


class UpstreamError(VulntreeError):
    status_code = 502
    error_code = "UPSTREAM_ERROR"


class RegistryFetchError(UpstreamError):
    def __init__(self, package: str, reason: str, status: Optional[int] = None) -> None:
        details: Dict[str, Any] = {"package": package, "reason": reason}
        if status is not None:
            details["status"] = status
        super().__init__(f"Failed to fetch '{package}' from registry: {reason}", details=details)
        self.package = package
        self.status = status


class VulnerabilityServiceError(UpstreamError):
    def __init__(self, reason: str, status: Optional[int] = None) -> None:
        details: Dict[str, Any] = {"reason": reason}
        if status is not None:
            details["status"] = status
        super().__init__(f"Vulnerability database request failed: {reason}", details=details)
        self.status = status
