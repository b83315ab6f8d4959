"""Public submission router - quote, job application and feedback forms"""

import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ...database import get_db
from ...errors import SecurityDenial, SubmissionValidationError
from ...security_gate import SecurityDecision, SecurityGate, gate_request_from, get_client_ip
from .repository import SubmissionRepository
from .schemas import SubmitResponse
from .service import SubmissionOrchestrator
from .types import SubmissionType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/submit", tags=["Submissions"])

# URL kind → rate-limit action
SUBMISSION_KINDS = {
    "quote": "quote",
    "job-application": "job-application",
    "feedback": "feedback",
}

QUOTE_TYPE_ALIASES = {
    "residential": SubmissionType.RESIDENTIAL_QUOTE,
    "commercial": SubmissionType.COMMERCIAL_QUOTE,
    "airbnb": SubmissionType.AIRBNB_QUOTE,
}


def get_security_gate(request: Request) -> SecurityGate:
    """The gate (and its rate-limit store) lives for the whole process"""
    return request.app.state.security_gate


def get_submission_orchestrator(db: Session = Depends(get_db)) -> SubmissionOrchestrator:
    """Dependency injection for SubmissionOrchestrator"""
    return SubmissionOrchestrator(SubmissionRepository(db))


def resolve_submission_type(kind: str, payload: Any) -> SubmissionType:
    """Map the URL kind (and, for quotes, quoteType/serviceType) to a submission type"""
    if kind == "job-application":
        return SubmissionType.JOB_APPLICATION
    if kind == "feedback":
        return SubmissionType.FEEDBACK

    if isinstance(payload, dict):
        for key in ("quoteType", "serviceType"):
            value = str(payload.get(key) or "").lower()
            for alias, submission_type in QUOTE_TYPE_ALIASES.items():
                if alias in value:
                    return submission_type
    return SubmissionType.RESIDENTIAL_QUOTE


def _error(status_code: int, error: str, headers: Optional[dict] = None, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, **extra},
        headers=headers,
    )


def _rate_limit_headers(decision: SecurityDecision) -> dict:
    if not decision.rate_limit:
        return {}
    return {"X-RateLimit-Remaining": str(decision.rate_limit.remaining)}


async def _read_body(request: Request) -> tuple[Any, bool]:
    """Returns (body, is_valid_json). Invalid bodies are returned as text for the gate to inspect."""
    raw = await request.body()
    try:
        return json.loads(raw), True
    except (ValueError, UnicodeDecodeError):
        return raw.decode("utf-8", errors="replace"), False


@router.post("/{kind}", response_model=SubmitResponse)
async def submit(
    kind: str,
    request: Request,
    gate: SecurityGate = Depends(get_security_gate),
    orchestrator: SubmissionOrchestrator = Depends(get_submission_orchestrator),
):
    """Accept a public form submission"""
    action = SUBMISSION_KINDS.get(kind)
    if not action:
        return _error(404, "Unknown submission type")

    body, is_json = await _read_body(request)

    try:
        decision = gate.enforce(gate_request_from(request, action, body))
    except SecurityDenial as denial:
        # The denial reason stays in the server log
        decision = denial.decision
        headers = _rate_limit_headers(decision)
        if decision.http_status == 429:
            rate = decision.rate_limit
            headers["Retry-After"] = str(rate.retry_after_seconds)
            return _error(
                429,
                "Too many requests. Please try again later.",
                headers=headers,
                remaining=rate.remaining,
                resetInMs=rate.reset_in_ms,
            )
        return _error(decision.http_status, "Access denied", headers=headers)
    except Exception as e:
        logger.error(f"❌ Rate limiting error: {str(e)}")
        logger.warning("🔒 Denying request due to rate limiting error (fail-closed mode)")
        return _error(503, "Rate limiting service temporarily unavailable")

    headers = _rate_limit_headers(decision)

    if not is_json:
        return _error(400, "Invalid JSON body", headers=headers)

    submission_type = resolve_submission_type(kind, body)

    try:
        outcome = await orchestrator.submit(submission_type, body, source_ip=get_client_ip(request))
    except SubmissionValidationError as e:
        return _error(400, "Validation failed", headers=headers, details=e.errors)
    except Exception as e:
        logger.error(f"❌ Unexpected error handling {submission_type.value} submission: {e}")
        return _error(500, "Something went wrong. Please try again later.", headers=headers)

    if not outcome.success:
        return _error(502, outcome.error, headers=headers)

    if submission_type == SubmissionType.FEEDBACK:
        message = "Thank you for your feedback!"
    elif submission_type == SubmissionType.JOB_APPLICATION:
        message = "Thanks for applying! We'll be in touch soon."
    else:
        message = "Thank you for your quote request! Our team will review and get back to you within 24 hours."

    return JSONResponse(
        status_code=200,
        content=SubmitResponse(
            success=True, referenceId=outcome.reference_id, message=message
        ).model_dump(exclude_none=True),
        headers=headers,
    )
