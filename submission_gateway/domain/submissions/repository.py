"""Submission repository - Database operations for submissions and their effect log"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import InvalidStatusTransition, SubmissionNotFound, UpstreamFailure
from ...models import Submission, SubmissionEffect, generate_reference_id
from .types import (
    StepResult,
    SubmissionEnvelope,
    SubmissionStatus,
    SubmissionType,
    validate_status_transition,
)

logger = logging.getLogger(__name__)


class SubmissionRepository:
    """Repository for submission database operations"""

    def __init__(self, db: Session):
        self.db = db

    def save(self, envelope: SubmissionEnvelope) -> str:
        """
        Persist a validated, sanitized submission.

        Returns:
            The reference id assigned to the submission

        Raises:
            UpstreamFailure: If the database write fails
        """
        submission = Submission(
            reference_id=generate_reference_id(),
            type=envelope.type.value,
            status=SubmissionStatus.SUBMITTED.value,
            data=envelope.payload,
            source_ip=envelope.source_ip,
            submitted_at=envelope.submitted_at,
        )
        try:
            self.db.add(submission)
            self.db.commit()
            self.db.refresh(submission)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise UpstreamFailure("database", str(e)) from e

        envelope.reference_id = submission.reference_id
        return submission.reference_id

    def get(self, reference_id: str) -> Optional[Submission]:
        return self.db.query(Submission).filter(Submission.reference_id == reference_id).first()

    def get_or_raise(self, reference_id: str) -> Submission:
        submission = self.get(reference_id)
        if not submission:
            raise SubmissionNotFound(reference_id)
        return submission

    def update_status(self, reference_id: str, status: SubmissionStatus) -> Submission:
        """
        Move a submission to a new status.

        Raises:
            SubmissionNotFound: Unknown reference id
            InvalidStatusTransition: The move is not allowed from the current status
            UpstreamFailure: If the database write fails
        """
        submission = self.get_or_raise(reference_id)
        new_status = SubmissionStatus(status).value

        if not validate_status_transition(submission.status, new_status):
            raise InvalidStatusTransition(submission.status, new_status)

        if submission.status != new_status:
            previous = submission.status
            submission.status = new_status
            self._commit()
            logger.info(f"✅ Submission {reference_id} transitioned: {previous} → {new_status}")

        return submission

    def update_fields(self, reference_id: str, **fields) -> Submission:
        """Record ids/links produced by side effects (calendar event, invoice, ...)"""
        submission = self.get_or_raise(reference_id)
        for key, value in fields.items():
            if value is not None and hasattr(submission, key):
                setattr(submission, key, value)
        self._commit()
        return submission

    def record_effects(self, reference_id: str, step_results: dict[str, StepResult]) -> None:
        submission = self.get_or_raise(reference_id)
        for step, result in step_results.items():
            self.db.add(
                SubmissionEffect(
                    submission_id=submission.id,
                    step=step,
                    status=result.status.value,
                    reason=result.reason,
                    detail=result.detail,
                )
            )
        self._commit()

    def latest_effects(self, reference_id: str) -> dict[str, str]:
        """Latest recorded status per step, oldest attempts overwritten by newer ones"""
        submission = self.get_or_raise(reference_id)
        latest: dict[str, str] = {}
        for effect in submission.effects:
            latest[effect.step] = effect.status
        return latest

    @staticmethod
    def to_envelope(submission: Submission) -> SubmissionEnvelope:
        return SubmissionEnvelope(
            type=SubmissionType(submission.type),
            payload=dict(submission.data or {}),
            source_ip=submission.source_ip,
            submitted_at=submission.submitted_at,
            reference_id=submission.reference_id,
            status=SubmissionStatus(submission.status),
        )

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise UpstreamFailure("database", str(e)) from e
