"""Submission domain schemas - Pydantic models for the public forms, admin actions and responses"""

from datetime import date, datetime, time
from typing import Any, ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ...shared.validators import (
    is_valid_au_phone,
    is_valid_email,
    validate_au_phone,
    validate_email,
    validate_min_length,
)

NAME_REQUIRED = "Full name is required"
EMAIL_REQUIRED = "Valid email is required"
PHONE_REQUIRED = "Valid Australian phone number is required"
SUBURB_REQUIRED = "Suburb is required"
TERMS_REQUIRED = "You must agree to the terms and conditions"
COMPANY_REQUIRED = "Please enter your company name"
FACILITY_REQUIRED = "Please specify facility type"
SQUARE_METERS_REQUIRED = "Please enter square meters"
FREQUENCY_REQUIRED = "Please select cleaning frequency"
EXPERIENCE_REQUIRED = "Please describe your cleaning experience"
WORK_RIGHTS_REQUIRED = "You must have Australian work rights to apply"
CHECKS_REQUIRED = "You must agree to background checks"
AVAILABILITY_REQUIRED = "Please select at least one day"
RATING_REQUIRED = "Rating must be between 1 and 5"
COMMENTS_REQUIRED = "Please provide at least 10 characters of feedback"
CONTACT_REQUIRED = "A phone number or email address is required so we can reach you"


def _required(value: Any, min_length: int, message: str) -> str:
    try:
        return validate_min_length(value, min_length)
    except ValueError:
        raise ValueError(message) from None


def _must_accept(value: Any, message: str) -> bool:
    if value is not True:
        raise ValueError(message)
    return value


def _checked(**kwargs) -> Any:
    """Field that is validated even when the form leaves it out"""
    return Field(default=None, validate_default=True, **kwargs)


# ============================================================================
# PUBLIC FORMS
# ============================================================================


class SubmissionForm(BaseModel):
    """
    Contact fields shared by the quote and job application forms

    Fields the rules don't mention are kept as-is. Every field validator runs
    on every call, so pydantic reports all violations together.
    """

    model_config = ConfigDict(extra="allow")

    # Alternate name fields, first populated one wins
    name_fields: ClassVar[tuple[str, ...]] = ("fullName",)

    fullName: Any = _checked()
    email: Any = _checked()
    phone: Any = _checked()

    @model_validator(mode="before")
    @classmethod
    def resolve_name(cls, data):
        if isinstance(data, dict):
            data = dict(data)
            data["fullName"] = next((data[f] for f in cls.name_fields if data.get(f)), None)
        return data

    @field_validator("fullName")
    @classmethod
    def check_name(cls, v):
        return _required(v, 2, NAME_REQUIRED)

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        try:
            return validate_email(v)
        except ValueError:
            raise ValueError(EMAIL_REQUIRED) from None

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v):
        try:
            return validate_au_phone(v)
        except ValueError:
            raise ValueError(PHONE_REQUIRED) from None


class QuoteForm(SubmissionForm):
    suburb: Any = _checked()

    @field_validator("suburb")
    @classmethod
    def check_suburb(cls, v):
        return _required(v, 2, SUBURB_REQUIRED)


class ResidentialQuoteForm(QuoteForm):
    agreedToTerms: Any = _checked()

    @field_validator("agreedToTerms")
    @classmethod
    def check_terms(cls, v):
        return _must_accept(v, TERMS_REQUIRED)


class CommercialQuoteForm(QuoteForm):
    name_fields: ClassVar[tuple[str, ...]] = ("fullName", "contactPerson")

    companyName: Any = _checked()
    facilityType: Any = _checked()
    squareMeters: Any = _checked()
    cleaningFrequency: Any = _checked()

    @field_validator("companyName")
    @classmethod
    def check_company(cls, v):
        return _required(v, 2, COMPANY_REQUIRED)

    @field_validator("facilityType")
    @classmethod
    def check_facility(cls, v):
        return _required(v, 2, FACILITY_REQUIRED)

    @field_validator("squareMeters")
    @classmethod
    def check_square_meters(cls, v):
        # The form sends a string, API clients may send a number
        if isinstance(v, (int, float)) and not isinstance(v, bool) and v > 0:
            return v
        return _required(v, 1, SQUARE_METERS_REQUIRED)

    @field_validator("cleaningFrequency")
    @classmethod
    def check_frequency(cls, v):
        return _required(v, 1, FREQUENCY_REQUIRED)


class AirbnbQuoteForm(QuoteForm):
    name_fields: ClassVar[tuple[str, ...]] = ("fullName", "contactName")


class JobApplicationForm(SubmissionForm):
    experience: Any = _checked()
    hasWorkRights: Any = _checked()
    agreedToChecks: Any = _checked()
    availability: Any = _checked()

    @field_validator("experience")
    @classmethod
    def check_experience(cls, v):
        return _required(v, 10, EXPERIENCE_REQUIRED)

    @field_validator("hasWorkRights")
    @classmethod
    def check_work_rights(cls, v):
        return _must_accept(v, WORK_RIGHTS_REQUIRED)

    @field_validator("agreedToChecks")
    @classmethod
    def check_background_checks(cls, v):
        return _must_accept(v, CHECKS_REQUIRED)

    @field_validator("availability")
    @classmethod
    def check_availability(cls, v):
        if not isinstance(v, list) or not any(isinstance(day, str) and day.strip() for day in v):
            raise ValueError(AVAILABILITY_REQUIRED)
        return v


class FeedbackForm(BaseModel):
    """Feedback may be anonymous; email is checked only when given"""

    model_config = ConfigDict(extra="allow")

    name_fields: ClassVar[tuple[str, ...]] = ("fullName",)

    rating: Any = _checked()
    comments: Any = _checked()
    email: Any = None

    @field_validator("rating")
    @classmethod
    def check_rating(cls, v):
        if isinstance(v, bool) or not isinstance(v, int) or not 1 <= v <= 5:
            raise ValueError(RATING_REQUIRED)
        return v

    @field_validator("comments")
    @classmethod
    def check_comments(cls, v):
        return _required(v, 10, COMMENTS_REQUIRED)

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        if v and not is_valid_email(v):
            raise ValueError(EMAIL_REQUIRED)
        return v


class ContactChannels(BaseModel):
    """Downstream notifications need at least one working contact channel"""

    model_config = ConfigDict(extra="ignore")

    email: Any = None
    phone: Any = None

    @model_validator(mode="after")
    def check_reachable(self):
        if not (is_valid_au_phone(self.phone) or is_valid_email(self.email)):
            raise ValueError(CONTACT_REQUIRED)
        return self


# ============================================================================
# ADMIN ACTIONS
# ============================================================================


class CustomerContact(BaseModel):
    """Overrides for the contact details stored with the submission"""

    customerName: Optional[str] = None
    customerEmail: Optional[str] = None
    customerPhone: Optional[str] = None

    @field_validator("customerEmail")
    @classmethod
    def check_email(cls, v):
        if v:
            return validate_email(v)
        return v


class ScheduleDetails(BaseModel):
    bookingDate: date
    startTime: time
    address: Optional[str] = None
    serviceType: Optional[str] = None
    bedrooms: Optional[int] = Field(default=None, ge=0)
    price: Optional[float] = Field(default=None, ge=0)
    durationMinutes: Optional[int] = Field(default=None, gt=0)
    cleanerName: Optional[str] = None
    specialInstructions: Optional[str] = None

    @property
    def start(self) -> datetime:
        return datetime.combine(self.bookingDate, self.startTime)

    def display(self) -> str:
        return self.start.strftime("%A %d %B %Y at %I:%M %p")


class InvoiceItem(BaseModel):
    name: str
    amount: float = Field(gt=0)
    quantity: int = Field(default=1, ge=1)


class InvoiceDetails(BaseModel):
    amount: float = Field(gt=0)
    description: str = "Cleaning service"
    dueDate: Optional[date] = None
    items: list[InvoiceItem] = Field(default_factory=list)


class ApproveRequest(BaseModel):
    schedule: ScheduleDetails
    customer: Optional[CustomerContact] = None


class CompleteRequest(BaseModel):
    invoice: InvoiceDetails
    customer: Optional[CustomerContact] = None


class ReviewRequest(BaseModel):
    customer: Optional[CustomerContact] = None


class ReminderRequest(BaseModel):
    schedule: ScheduleDetails
    customer: Optional[CustomerContact] = None


class SubmitResponse(BaseModel):
    success: bool
    referenceId: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    details: Optional[list[str]] = None


class ActionResponse(BaseModel):
    success: bool
    referenceId: str
    error: Optional[str] = None
    stepResults: dict[str, dict[str, Any]] = Field(default_factory=dict)
    calendarEventId: Optional[str] = None
    emailSent: Optional[bool] = None
    invoiceId: Optional[str] = None
    invoiceUrl: Optional[str] = None
    paymentLink: Optional[str] = None
