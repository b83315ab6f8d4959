"""Submission domain types shared by the validator, orchestrator and routers"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class SubmissionType(str, Enum):
    RESIDENTIAL_QUOTE = "residential-quote"
    COMMERCIAL_QUOTE = "commercial-quote"
    AIRBNB_QUOTE = "airbnb-quote"
    JOB_APPLICATION = "job-application"
    FEEDBACK = "feedback"

    @property
    def is_quote(self) -> bool:
        return self in QUOTE_TYPES

    @property
    def label(self) -> str:
        return SUBMISSION_LABELS[self]


QUOTE_TYPES = frozenset(
    {
        SubmissionType.RESIDENTIAL_QUOTE,
        SubmissionType.COMMERCIAL_QUOTE,
        SubmissionType.AIRBNB_QUOTE,
    }
)

SUBMISSION_LABELS = {
    SubmissionType.RESIDENTIAL_QUOTE: "Residential Cleaning",
    SubmissionType.COMMERCIAL_QUOTE: "Commercial Cleaning",
    SubmissionType.AIRBNB_QUOTE: "Airbnb Cleaning",
    SubmissionType.JOB_APPLICATION: "Job Application",
    SubmissionType.FEEDBACK: "Client Feedback",
}


class SubmissionStatus(str, Enum):
    SUBMITTED = "submitted"
    APPROVED = "approved"
    COMPLETED = "completed"


# Same-status moves are allowed so that retried admin actions are no-ops
VALID_STATUS_TRANSITIONS = {
    SubmissionStatus.SUBMITTED: {SubmissionStatus.APPROVED},
    SubmissionStatus.APPROVED: {SubmissionStatus.COMPLETED},
    SubmissionStatus.COMPLETED: set(),
}


def validate_status_transition(current_status: str, new_status: str) -> bool:
    """
    Validate if a submission status transition is allowed

    Submission statuses: submitted → approved → completed
    """
    if current_status == new_status:
        return True
    try:
        current = SubmissionStatus(current_status)
        new = SubmissionStatus(new_status)
    except ValueError:
        return False
    return new in VALID_STATUS_TRANSITIONS[current]


class StepStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"


class StepResult(BaseModel):
    """Outcome of one side effect: ok, failed(reason) or skipped(reason)"""

    model_config = ConfigDict(frozen=True)

    status: StepStatus
    reason: Optional[str] = None
    detail: Optional[str] = None

    @classmethod
    def ok(cls, detail: Optional[str] = None) -> "StepResult":
        return cls(status=StepStatus.OK, detail=detail)

    @classmethod
    def failed(cls, reason: str) -> "StepResult":
        return cls(status=StepStatus.FAILED, reason=reason)

    @classmethod
    def skipped(cls, reason: str) -> "StepResult":
        return cls(status=StepStatus.SKIPPED, reason=reason)

    @property
    def succeeded(self) -> bool:
        return self.status == StepStatus.OK

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class SubmissionEnvelope(BaseModel):
    type: SubmissionType
    payload: dict[str, Any]
    source_ip: Optional[str] = None
    submitted_at: datetime = Field(default_factory=datetime.utcnow)
    reference_id: Optional[str] = None
    status: SubmissionStatus = SubmissionStatus.SUBMITTED


class SubmissionOutcome(BaseModel):
    success: bool
    reference_id: Optional[str] = None
    error: Optional[str] = None
    step_results: dict[str, StepResult] = Field(default_factory=dict)


class ApprovalOutcome(BaseModel):
    success: bool
    calendar_event_id: Optional[str] = None
    email_sent: bool = False
    error: Optional[str] = None
    step_results: dict[str, StepResult] = Field(default_factory=dict)


class InvoiceOutcome(BaseModel):
    success: bool
    invoice_id: Optional[str] = None
    invoice_url: Optional[str] = None
    payment_link: Optional[str] = None
    error: Optional[str] = None
    step_results: dict[str, StepResult] = Field(default_factory=dict)


class ActionOutcome(BaseModel):
    """Result of a single-effect admin action (review request, reminder)"""

    success: bool
    error: Optional[str] = None
    step_results: dict[str, StepResult] = Field(default_factory=dict)
