"""
Per-type submission validation

Each submission type has a pydantic form in schemas.py. Every rule runs on
every call, so the caller gets the full list of problems in one response
instead of fixing them one at a time.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from .schemas import (
    AirbnbQuoteForm,
    CommercialQuoteForm,
    ContactChannels,
    FeedbackForm,
    JobApplicationForm,
    ResidentialQuoteForm,
)
from .types import SubmissionType

PAYLOAD_NOT_OBJECT = "Submission body must be a JSON object"

FORMS: dict[SubmissionType, type[BaseModel]] = {
    SubmissionType.RESIDENTIAL_QUOTE: ResidentialQuoteForm,
    SubmissionType.COMMERCIAL_QUOTE: CommercialQuoteForm,
    SubmissionType.AIRBNB_QUOTE: AirbnbQuoteForm,
    SubmissionType.JOB_APPLICATION: JobApplicationForm,
    SubmissionType.FEEDBACK: FeedbackForm,
}


class ValidationResult(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)


def error_messages(exc: ValidationError) -> list[str]:
    """One message per violated rule, in field order"""
    messages = []
    for error in exc.errors():
        cause = error.get("ctx", {}).get("error")
        messages.append(str(cause) if cause is not None else error["msg"])
    return messages


def _collect(form: type[BaseModel], payload: Mapping) -> list[str]:
    try:
        form.model_validate(dict(payload))
    except ValidationError as e:
        return error_messages(e)
    return []


def contact_name(submission_type: SubmissionType, payload: Mapping) -> Any:
    """First populated name field for the submission type"""
    form = FORMS[SubmissionType(submission_type)]
    for name_field in form.name_fields:
        if payload.get(name_field):
            return payload.get(name_field)
    return None


def validate(submission_type: SubmissionType, payload: Any) -> ValidationResult:
    """
    Validate a submission payload against its type's form.

    Returns:
        ValidationResult listing every violated constraint
    """
    if not isinstance(payload, Mapping):
        return ValidationResult(valid=False, errors=[PAYLOAD_NOT_OBJECT])

    errors = _collect(FORMS[SubmissionType(submission_type)], payload)
    errors += _collect(ContactChannels, payload)

    return ValidationResult(valid=not errors, errors=errors)
