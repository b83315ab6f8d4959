"""
Submission orchestrator - Business logic for public submissions and admin actions

Persisting the submission is the only mandatory step. Everything after it
(team alerts, n8n forward, customer emails, calendar, billing) is attempted
once, isolated per step, and reported as a StepResult.
"""

import logging
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel

from ...config import SANITIZE_MAX_LENGTH
from ...email_service import EmailService
from ...errors import (
    ConfigurationError,
    InvalidStatusTransition,
    SubmissionNotFound,
    SubmissionValidationError,
)
from ...services.google_calendar_service import BookingEvent, GoogleCalendarService
from ...services.notification_service import (
    TeamNotifier,
    build_approval_message,
    build_completion_message,
    build_submission_message,
)
from ...services.square_service import BillingRequest, InvoiceLine, SquareService
from ...services.webhook_service import WebhookService
from ...shared.validators import is_valid_email
from ...utils.sanitization import sanitize
from .repository import SubmissionRepository
from .schemas import CustomerContact, InvoiceDetails, ReminderRequest, ScheduleDetails
from .types import (
    ActionOutcome,
    ApprovalOutcome,
    InvoiceOutcome,
    StepResult,
    StepStatus,
    SubmissionEnvelope,
    SubmissionOutcome,
    SubmissionStatus,
    SubmissionType,
)
from .validation import contact_name, validate

logger = logging.getLogger(__name__)

PERSIST_STEP = "persist"
# Best-effort steps run after a successful persist, in this order
SUBMISSION_STEPS = ("team_notification", "webhook_forward", "customer_email")

PERSIST_ERROR = "Failed to save submission. Please try again or call us directly."
STATUS_UPDATE_ERROR = "Failed to update submission status"
EMAIL_NOT_CONFIGURED = "email service not configured"
NO_CUSTOMER_EMAIL = "No customer email on file"


class Contact(BaseModel):
    name: str
    email: Optional[str]
    phone: Optional[str]


def resolve_contact(envelope: SubmissionEnvelope, override: Optional[CustomerContact] = None) -> Contact:
    """Contact details from the stored payload, with admin-supplied overrides taking precedence"""
    payload = envelope.payload
    name = contact_name(envelope.type, payload) or payload.get("name") or "Customer"
    email = payload.get("email") if is_valid_email(payload.get("email")) else None
    phone = payload.get("phone") or None

    if override:
        name = override.customerName or name
        email = override.customerEmail or email
        phone = override.customerPhone or phone

    return Contact(name=str(name), email=email, phone=phone)


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _email_result(message_id: Optional[str]) -> StepResult:
    return StepResult.ok(message_id) if message_id else StepResult.skipped(EMAIL_NOT_CONFIGURED)


class SubmissionOrchestrator:
    """Runs the submission pipeline and the admin actions that follow it"""

    def __init__(
        self,
        repository: SubmissionRepository,
        notifier: Optional[TeamNotifier] = None,
        webhook: Optional[WebhookService] = None,
        calendar: Optional[GoogleCalendarService] = None,
        billing: Optional[SquareService] = None,
        mailer: Optional[EmailService] = None,
    ):
        self.repository = repository
        self.notifier = notifier or TeamNotifier()
        self.webhook = webhook or WebhookService()
        self.calendar = calendar or GoogleCalendarService()
        self.billing = billing or SquareService()
        self.mailer = mailer or EmailService()

    # ============================================================================
    # STEP HELPERS
    # ============================================================================

    async def _run_step(self, name: str, action: Callable[[], Awaitable[StepResult]]) -> StepResult:
        try:
            result = await action()
        except ConfigurationError as e:
            logger.warning(f"⚠️ Step {name} skipped: {e}")
            return StepResult.skipped(str(e))
        except Exception as e:
            logger.error(f"❌ Step {name} failed: {e}")
            return StepResult.failed(str(e))

        if result.status == StepStatus.SKIPPED:
            logger.info(f"Step {name} skipped: {result.reason}")
        else:
            logger.info(f"✅ Step {name} completed")
        return result

    def _record(self, reference_id: str, step_results: dict[str, StepResult]) -> None:
        """Append step results to the effect log without affecting the outcome"""
        try:
            self.repository.record_effects(reference_id, step_results)
        except Exception as e:
            logger.warning(f"⚠️ Could not record step results for {reference_id}: {e}")

    def _submission_step(self, name: str, envelope: SubmissionEnvelope) -> Callable[[], Awaitable[StepResult]]:
        steps = {
            "team_notification": self._notify_team,
            "webhook_forward": self._forward_webhook,
            "customer_email": self._acknowledge_customer,
        }
        return lambda: steps[name](envelope)

    async def _notify_team(self, envelope: SubmissionEnvelope) -> StepResult:
        await self.notifier.notify(build_submission_message(envelope))
        return StepResult.ok()

    async def _forward_webhook(self, envelope: SubmissionEnvelope) -> StepResult:
        status_code = await self.webhook.forward(envelope)
        return StepResult.ok(f"HTTP {status_code}")

    async def _acknowledge_customer(self, envelope: SubmissionEnvelope) -> StepResult:
        if not envelope.type.is_quote:
            return StepResult.skipped("acknowledgement is only sent for quotes")

        contact = resolve_contact(envelope)
        if not contact.email:
            return StepResult.skipped("no customer email")

        message_id = await self.mailer.send_submission_acknowledgement(
            to=contact.email,
            customer_name=contact.name,
            reference_id=envelope.reference_id,
            service_label=envelope.type.label,
        )
        return _email_result(message_id)

    # ============================================================================
    # PUBLIC SUBMISSIONS
    # ============================================================================

    async def submit(
        self, submission_type: SubmissionType, raw_payload: Any, source_ip: Optional[str] = None
    ) -> SubmissionOutcome:
        """
        Validate, sanitize and process a public submission

        Raises:
            SubmissionValidationError: The payload failed its type's rules
        """
        result = validate(submission_type, raw_payload)
        if not result.valid:
            raise SubmissionValidationError(result.errors)

        payload = sanitize(dict(raw_payload), max_length=SANITIZE_MAX_LENGTH)

        # Stripping markup can empty a field that passed, e.g. a name of "<>"
        result = validate(submission_type, payload)
        if not result.valid:
            raise SubmissionValidationError(result.errors)

        return await self.process_submission(submission_type, payload, source_ip)

    async def process_submission(
        self, submission_type: SubmissionType, payload: dict[str, Any], source_ip: Optional[str] = None
    ) -> SubmissionOutcome:
        """
        Persist a validated, sanitized submission and run the best-effort steps

        A persistence failure fails the whole operation and no other step is
        attempted. Failures in later steps are reported but never change success.
        """
        envelope = SubmissionEnvelope(
            type=SubmissionType(submission_type), payload=payload, source_ip=source_ip
        )

        try:
            reference_id = self.repository.save(envelope)
        except Exception as e:
            logger.error(f"❌ Failed to persist {envelope.type.value} submission: {e}")
            return SubmissionOutcome(
                success=False,
                error=PERSIST_ERROR,
                step_results={PERSIST_STEP: StepResult.failed(str(e))},
            )

        logger.info(f"✅ Saved {envelope.type.value} submission {reference_id}")
        step_results = {PERSIST_STEP: StepResult.ok(reference_id)}
        for name in SUBMISSION_STEPS:
            step_results[name] = await self._run_step(name, self._submission_step(name, envelope))

        self._record(reference_id, {k: v for k, v in step_results.items() if k != PERSIST_STEP})
        return SubmissionOutcome(success=True, reference_id=reference_id, step_results=step_results)

    async def retry_failed_steps(self, reference_id: str) -> SubmissionOutcome:
        """Re-run the submission steps whose latest attempt failed"""
        try:
            submission = self.repository.get_or_raise(reference_id)
            latest = self.repository.latest_effects(reference_id)
        except SubmissionNotFound as e:
            return SubmissionOutcome(success=False, error=str(e))

        envelope = self.repository.to_envelope(submission)
        step_results: dict[str, StepResult] = {}
        for name in SUBMISSION_STEPS:
            if latest.get(name) == StepStatus.FAILED.value:
                step_results[name] = await self._run_step(name, self._submission_step(name, envelope))

        if step_results:
            self._record(reference_id, step_results)
        else:
            logger.info(f"No failed steps to retry for {reference_id}")

        return SubmissionOutcome(success=True, reference_id=reference_id, step_results=step_results)

    # ============================================================================
    # ADMIN ACTIONS
    # ============================================================================

    def _transition(self, reference_id: str, status: SubmissionStatus):
        """Returns (submission, error). Mandatory for approve/complete."""
        try:
            return self.repository.update_status(reference_id, status), None
        except (SubmissionNotFound, InvalidStatusTransition) as e:
            logger.warning(f"⚠️ Cannot move {reference_id} to {status.value}: {e}")
            return None, str(e)
        except Exception as e:
            logger.error(f"❌ Status update failed for {reference_id}: {e}")
            return None, STATUS_UPDATE_ERROR

    async def approve(
        self,
        reference_id: str,
        schedule: ScheduleDetails,
        customer: Optional[CustomerContact] = None,
    ) -> ApprovalOutcome:
        """
        Approve a booking: status, then calendar event, confirmation email and team alert

        The calendar event is created at most once per submission; a repeated
        approve reuses the stored event id.
        """
        submission, error = self._transition(reference_id, SubmissionStatus.APPROVED)
        if error:
            return ApprovalOutcome(success=False, error=error)

        envelope = self.repository.to_envelope(submission)
        contact = resolve_contact(envelope, customer)
        payload = envelope.payload
        address = schedule.address or payload.get("address") or payload.get("suburb") or "TBD"
        service_type = schedule.serviceType or payload.get("serviceType") or envelope.type.label
        calendar_event_id = submission.calendar_event_id
        step_results = {"status_update": StepResult.ok(SubmissionStatus.APPROVED.value)}

        async def create_calendar_event() -> StepResult:
            event_id = await self.calendar.create_event(
                BookingEvent(
                    reference_id=reference_id,
                    customer_name=contact.name,
                    address=address,
                    service_type=service_type,
                    start=schedule.start,
                    customer_phone=contact.phone,
                    customer_email=contact.email,
                    bedrooms=schedule.bedrooms or _as_int(payload.get("bedrooms")),
                    price=schedule.price,
                    cleaner_name=schedule.cleanerName,
                    notes=schedule.specialInstructions,
                    duration_minutes=schedule.durationMinutes,
                )
            )
            self.repository.update_fields(reference_id, calendar_event_id=event_id)
            return StepResult.ok(event_id)

        if calendar_event_id:
            step_results["calendar_event"] = StepResult.skipped(
                f"event {calendar_event_id} already exists"
            )
        else:
            result = await self._run_step("calendar_event", create_calendar_event)
            step_results["calendar_event"] = result
            if result.succeeded:
                calendar_event_id = result.detail

        async def send_confirmation() -> StepResult:
            if not contact.email:
                return StepResult.skipped("no customer email")
            message_id = await self.mailer.send_booking_confirmation(
                to=contact.email,
                customer_name=contact.name,
                reference_id=reference_id,
                service_type=service_type,
                when=schedule.display(),
                address=address,
            )
            return _email_result(message_id)

        step_results["confirmation_email"] = await self._run_step("confirmation_email", send_confirmation)

        async def notify_team() -> StepResult:
            await self.notifier.notify(
                build_approval_message(reference_id, contact.name, schedule.display(), calendar_event_id)
            )
            return StepResult.ok()

        step_results["approval_notification"] = await self._run_step("approval_notification", notify_team)

        self._record(reference_id, step_results)
        return ApprovalOutcome(
            success=True,
            calendar_event_id=calendar_event_id,
            email_sent=step_results["confirmation_email"].succeeded,
            step_results=step_results,
        )

    async def complete(
        self,
        reference_id: str,
        invoice: InvoiceDetails,
        customer: Optional[CustomerContact] = None,
    ) -> InvoiceOutcome:
        """
        Complete a job: status, then invoice (or payment link), invoice email and team alert

        A stored invoice or payment link is reused so a retried completion
        never bills the customer twice.
        """
        submission, error = self._transition(reference_id, SubmissionStatus.COMPLETED)
        if error:
            return InvoiceOutcome(success=False, error=error)

        envelope = self.repository.to_envelope(submission)
        contact = resolve_contact(envelope, customer)
        billing_request = BillingRequest(
            reference_id=reference_id,
            customer_name=contact.name,
            customer_email=contact.email,
            customer_phone=contact.phone,
            amount=invoice.amount,
            description=invoice.description,
            due_date=invoice.dueDate,
            line_items=[
                InvoiceLine(name=item.name, amount=item.amount, quantity=item.quantity)
                for item in invoice.items
            ],
        )
        invoice_id = submission.invoice_id
        invoice_url = submission.invoice_url
        payment_link = submission.payment_link
        step_results = {"status_update": StepResult.ok(SubmissionStatus.COMPLETED.value)}

        async def create_invoice() -> StepResult:
            nonlocal invoice_id, invoice_url
            # The draft id is stored before publishing so a retry publishes the same invoice
            if not invoice_id:
                draft = await self.billing.create_draft_invoice(billing_request)
                invoice_id = draft.invoice_id
                self.repository.update_fields(reference_id, invoice_id=invoice_id)
            published = await self.billing.publish_invoice(reference_id, invoice_id)
            invoice_url = published.invoice_url
            self.repository.update_fields(reference_id, invoice_url=invoice_url)
            return StepResult.ok(invoice_id)

        if invoice_url:
            step_results["invoice"] = StepResult.skipped(f"invoice {invoice_id} already exists")
        elif payment_link:
            # The customer already has a way to pay
            step_results["invoice"] = StepResult.skipped("payment link already sent")
        else:
            step_results["invoice"] = await self._run_step("invoice", create_invoice)

        # No invoice URL means the customer has nothing to pay with yet
        if not invoice_url:

            async def create_payment_link() -> StepResult:
                nonlocal payment_link
                payment_link = await self.billing.create_payment_link(billing_request)
                self.repository.update_fields(reference_id, payment_link=payment_link)
                return StepResult.ok(payment_link)

            if payment_link:
                step_results["payment_link"] = StepResult.skipped("payment link already exists")
            else:
                step_results["payment_link"] = await self._run_step("payment_link", create_payment_link)

        async def send_invoice() -> StepResult:
            payment_url = invoice_url or payment_link
            if not payment_url:
                return StepResult.skipped("no invoice or payment link to send")
            if not contact.email:
                return StepResult.skipped("no customer email")
            message_id = await self.mailer.send_invoice_email(
                to=contact.email,
                customer_name=contact.name,
                reference_id=reference_id,
                amount=invoice.amount,
                payment_url=payment_url,
                due_date=billing_request.resolved_due_date().isoformat(),
            )
            return _email_result(message_id)

        step_results["invoice_email"] = await self._run_step("invoice_email", send_invoice)

        async def notify_team() -> StepResult:
            await self.notifier.notify(
                build_completion_message(
                    reference_id, contact.name, invoice.amount, invoice_url, payment_link
                )
            )
            return StepResult.ok()

        step_results["completion_notification"] = await self._run_step(
            "completion_notification", notify_team
        )

        self._record(reference_id, step_results)
        return InvoiceOutcome(
            success=True,
            invoice_id=invoice_id,
            invoice_url=invoice_url,
            payment_link=payment_link,
            step_results=step_results,
        )

    async def _single_email_action(
        self,
        reference_id: str,
        step: str,
        customer: Optional[CustomerContact],
        send: Callable[[Contact, SubmissionEnvelope], Awaitable[Optional[str]]],
    ) -> ActionOutcome:
        """Actions whose only effect is one email: a failed email fails the action"""
        try:
            submission = self.repository.get_or_raise(reference_id)
        except SubmissionNotFound as e:
            return ActionOutcome(success=False, error=str(e))

        envelope = self.repository.to_envelope(submission)
        contact = resolve_contact(envelope, customer)
        if not contact.email:
            return ActionOutcome(
                success=False,
                error=NO_CUSTOMER_EMAIL,
                step_results={step: StepResult.failed("no customer email")},
            )

        async def send_email() -> StepResult:
            return _email_result(await send(contact, envelope))

        result = await self._run_step(step, send_email)
        step_results = {step: result}
        self._record(reference_id, step_results)

        if result.status == StepStatus.FAILED:
            return ActionOutcome(success=False, error=result.reason, step_results=step_results)
        return ActionOutcome(success=True, step_results=step_results)

    async def request_review(
        self, reference_id: str, customer: Optional[CustomerContact] = None
    ) -> ActionOutcome:
        """Send the review-request email. Status is unchanged."""

        async def send(contact: Contact, envelope: SubmissionEnvelope) -> Optional[str]:
            return await self.mailer.send_review_request(to=contact.email, customer_name=contact.name)

        return await self._single_email_action(reference_id, "review_email", customer, send)

    async def send_booking_reminder(self, reference_id: str, reminder: ReminderRequest) -> ActionOutcome:
        """Send the day-before booking reminder"""

        async def send(contact: Contact, envelope: SubmissionEnvelope) -> Optional[str]:
            payload = envelope.payload
            return await self.mailer.send_booking_reminder(
                to=contact.email,
                customer_name=contact.name,
                reference_id=reference_id,
                when=reminder.schedule.display(),
                address=reminder.schedule.address or payload.get("address") or payload.get("suburb") or "TBD",
            )

        return await self._single_email_action(reference_id, "reminder_email", reminder.customer, send)
