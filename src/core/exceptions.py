"""
Application exceptions.

Raise these instead of generic Exception so the API layer can map them to a
status code and a short machine-readable code:

    if not reader:
        raise ReaderNotFoundError(reader_pin)
"""

from typing import Any, Dict, Optional


class QolaeError(Exception):
    """Base exception for all application errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


# ============================================
# Validation Errors (400)
# ============================================

class ValidationError(QolaeError):
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field} if field else None,
        )


class InvalidPinError(ValidationError):
    def __init__(self, reader_pin: str):
        super().__init__(f"Invalid Reader PIN format: '{reader_pin}'", field="readerPin")
        self.code = "INVALID_PIN"


# ============================================
# Authentication & Authorization Errors
# ============================================

class AuthenticationError(QolaeError):
    status_code = 401

    def __init__(self, message: str = "Authentication required", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="AUTH_FAILED", details=details)


class AuthorizationError(QolaeError):
    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, code="NOT_AUTHORIZED")


class ComplianceRequiredError(QolaeError):
    """Reader has not submitted HR compliance; answered with a redirect"""

    status_code = 302

    def __init__(self, redirect_url: str):
        super().__init__("HR compliance must be completed first", code="COMPLIANCE_REQUIRED")
        self.redirect_url = redirect_url


# ============================================
# Resource Errors (404)
# ============================================

class ResourceNotFoundError(QolaeError):
    status_code = 404

    def __init__(self, resource_type: str, resource_id: Any, message: Optional[str] = None):
        super().__init__(
            message or f"{resource_type} '{resource_id}' not found",
            code=f"{resource_type.upper().replace(' ', '_')}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": str(resource_id)},
        )


class ReaderNotFoundError(ResourceNotFoundError):
    def __init__(self, reader_pin: str):
        super().__init__("Reader", reader_pin)


class AssignmentNotFoundError(ResourceNotFoundError):
    def __init__(self, assignment_id: Any):
        super().__init__("Assignment", assignment_id)


class NdaVersionNotFoundError(ResourceNotFoundError):
    def __init__(self, version: str = "current"):
        super().__init__("NDA version", version)


class NdaArtifactNotFoundError(ResourceNotFoundError):
    def __init__(self, path: str):
        super().__init__("NDA file", path, message=f"NDA file not found at: {path}")


class PreviewNotFoundError(ResourceNotFoundError):
    def __init__(self, reader_pin: str):
        super().__init__(
            "Preview",
            reader_pin,
            message="Preview not found. Please restart the signing process.",
        )


class SignedNdaNotFoundError(ResourceNotFoundError):
    def __init__(self, reader_pin: str):
        super().__init__("Signed NDA", reader_pin, message="Signed NDA not found")


# ============================================
# State Errors (409)
# ============================================

class InvalidStateError(QolaeError):
    status_code = 409

    def __init__(self, message: str, code: str = "INVALID_STATE"):
        super().__init__(message, code=code)


class AssignmentLockedError(InvalidStateError):
    def __init__(self, assignment_id: Any):
        super().__init__(
            f"Assignment {assignment_id} has been submitted and can no longer be edited",
            code="ASSIGNMENT_LOCKED",
        )


class InvalidPaymentTransitionError(InvalidStateError):
    def __init__(self, current: str, requested: str, reason: Optional[str] = None):
        message = f"Cannot change payment status from {current} to {requested}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, code="INVALID_PAYMENT_TRANSITION")


class InvalidReviewStateError(InvalidStateError):
    def __init__(self, message: str):
        super().__init__(message, code="INVALID_REVIEW_STATE")


# ============================================
# Integration Errors
# ============================================

class UpstreamUnavailableError(QolaeError):
    status_code = 503

    def __init__(self, service: str, reason: str = ""):
        super().__init__(
            f"{service} unavailable" + (f": {reason}" if reason else ""),
            code="UPSTREAM_UNAVAILABLE",
            details={"service": service},
        )


class PdfProcessingError(QolaeError):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message, code="PDF_ERROR")
