"""
Gateway error taxonomy

Mandatory-step failures propagate to the caller; best-effort failures are
caught per step and folded into a step report.
"""

from typing import Optional

SUBMISSION_NOT_FOUND = "Submission not found"


class GatewayError(Exception):
    """Base class for all submission gateway errors"""

    pass


class SubmissionValidationError(GatewayError):
    """User input failed the schema for its submission type"""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("Validation failed: " + "; ".join(self.errors))


class SecurityDenial(GatewayError):
    """Request blocked by the security gate. Detail is kept server-side."""

    def __init__(self, decision):
        self.decision = decision
        super().__init__(f"Request denied ({decision.reason_code.value})")


class UpstreamFailure(GatewayError):
    """A collaborator call failed"""

    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        self.service = service
        self.status_code = status_code
        super().__init__(f"{service}: {message}")


class ConfigurationError(GatewayError):
    """A required integration is not configured; callers treat this as skipped"""

    def __init__(self, service: str, message: Optional[str] = None):
        self.service = service
        super().__init__(message or f"{service} is not configured")


class SubmissionNotFound(GatewayError):
    def __init__(self, reference_id: str):
        self.reference_id = reference_id
        super().__init__(SUBMISSION_NOT_FOUND)


class InvalidStatusTransition(GatewayError):
    def __init__(self, current_status: str, new_status: str):
        self.current_status = current_status
        self.new_status = new_status
        super().__init__(f"Cannot move submission from '{current_status}' to '{new_status}'")
