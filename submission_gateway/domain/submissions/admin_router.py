"""Admin router - post-submission actions (approve, complete, review, reminder, retry)"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ...auth import require_admin_secret
from ...errors import SUBMISSION_NOT_FOUND
from ...models import Submission
from .router import get_submission_orchestrator
from .schemas import ActionResponse, ApproveRequest, CompleteRequest, ReminderRequest, ReviewRequest
from .service import NO_CUSTOMER_EMAIL, STATUS_UPDATE_ERROR, SubmissionOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin/submissions",
    tags=["Admin"],
    dependencies=[Depends(require_admin_secret)],
)


def get_submission_or_404(
    reference_id: str,
    orchestrator: SubmissionOrchestrator = Depends(get_submission_orchestrator),
) -> Submission:
    submission = orchestrator.repository.get(reference_id)
    if not submission:
        raise HTTPException(status_code=404, detail=SUBMISSION_NOT_FOUND)
    return submission


def _raise_for_failure(success: bool, error: Optional[str], transition: bool = False) -> None:
    if success:
        return
    if error == SUBMISSION_NOT_FOUND:
        raise HTTPException(status_code=404, detail=error)
    if error == NO_CUSTOMER_EMAIL:
        raise HTTPException(status_code=422, detail=error)
    if transition and error != STATUS_UPDATE_ERROR:
        # Invalid status transition
        raise HTTPException(status_code=409, detail=error)
    raise HTTPException(status_code=502, detail=error or "Action failed")


def _step_dicts(step_results) -> dict:
    return {name: result.to_dict() for name, result in step_results.items()}


# ============================================================================
# ADMIN ACTIONS
# ============================================================================


@router.post("/{reference_id}/approve", response_model=ActionResponse)
async def approve_submission(
    reference_id: str,
    data: ApproveRequest,
    _submission: Submission = Depends(get_submission_or_404),
    orchestrator: SubmissionOrchestrator = Depends(get_submission_orchestrator),
):
    """Approve a booking, create its calendar event and confirm with the customer"""
    outcome = await orchestrator.approve(reference_id, data.schedule, data.customer)
    _raise_for_failure(outcome.success, outcome.error, transition=True)
    return ActionResponse(
        success=True,
        referenceId=reference_id,
        stepResults=_step_dicts(outcome.step_results),
        calendarEventId=outcome.calendar_event_id,
        emailSent=outcome.email_sent,
    )


@router.post("/{reference_id}/complete", response_model=ActionResponse)
async def complete_submission(
    reference_id: str,
    data: CompleteRequest,
    _submission: Submission = Depends(get_submission_or_404),
    orchestrator: SubmissionOrchestrator = Depends(get_submission_orchestrator),
):
    """Mark a job complete and bill the customer"""
    outcome = await orchestrator.complete(reference_id, data.invoice, data.customer)
    _raise_for_failure(outcome.success, outcome.error, transition=True)
    return ActionResponse(
        success=True,
        referenceId=reference_id,
        stepResults=_step_dicts(outcome.step_results),
        invoiceId=outcome.invoice_id,
        invoiceUrl=outcome.invoice_url,
        paymentLink=outcome.payment_link,
    )


@router.post("/{reference_id}/request-review", response_model=ActionResponse)
async def request_review(
    reference_id: str,
    data: Optional[ReviewRequest] = None,
    _submission: Submission = Depends(get_submission_or_404),
    orchestrator: SubmissionOrchestrator = Depends(get_submission_orchestrator),
):
    outcome = await orchestrator.request_review(reference_id, data.customer if data else None)
    _raise_for_failure(outcome.success, outcome.error)
    return ActionResponse(
        success=True, referenceId=reference_id, stepResults=_step_dicts(outcome.step_results)
    )


@router.post("/{reference_id}/remind", response_model=ActionResponse)
async def send_booking_reminder(
    reference_id: str,
    data: ReminderRequest,
    _submission: Submission = Depends(get_submission_or_404),
    orchestrator: SubmissionOrchestrator = Depends(get_submission_orchestrator),
):
    outcome = await orchestrator.send_booking_reminder(reference_id, data)
    _raise_for_failure(outcome.success, outcome.error)
    return ActionResponse(
        success=True, referenceId=reference_id, stepResults=_step_dicts(outcome.step_results)
    )


@router.post("/{reference_id}/retry", response_model=ActionResponse)
async def retry_failed_steps(
    reference_id: str,
    _submission: Submission = Depends(get_submission_or_404),
    orchestrator: SubmissionOrchestrator = Depends(get_submission_orchestrator),
):
    """Re-run notification/webhook/email steps whose last attempt failed"""
    outcome = await orchestrator.retry_failed_steps(reference_id)
    _raise_for_failure(outcome.success, outcome.error)
    return ActionResponse(
        success=True, referenceId=reference_id, stepResults=_step_dicts(outcome.step_results)
    )
