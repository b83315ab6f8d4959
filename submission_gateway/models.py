import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_reference_id():
    """Generate the customer-facing reference for a submission"""
    return f"CUB-{uuid.uuid4().hex[:10].upper()}"


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, index=True)
    reference_id = Column(String(32), unique=True, index=True, nullable=False)
    type = Column(String(50), nullable=False, index=True)  # residential-quote, job-application, ...
    status = Column(String(20), nullable=False, default="submitted")  # submitted → approved → completed
    data = Column(JSON, nullable=False)  # Sanitized form payload
    source_ip = Column(String(64), nullable=True)
    submitted_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Set by admin actions; presence means the side effect already happened
    calendar_event_id = Column(String(255), nullable=True)
    invoice_id = Column(String(255), nullable=True)
    invoice_url = Column(String(500), nullable=True)
    payment_link = Column(String(500), nullable=True)

    effects = relationship(
        "SubmissionEffect",
        back_populates="submission",
        cascade="all, delete-orphan",
        order_by="SubmissionEffect.id",
    )


class SubmissionEffect(Base):
    """One attempt at a downstream side effect (notification, email, webhook, ...)"""

    __tablename__ = "submission_effects"

    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(Integer, ForeignKey("submissions.id"), nullable=False, index=True)
    step = Column(String(50), nullable=False)  # team_notification, webhook_forward, ...
    status = Column(String(20), nullable=False)  # ok, failed, skipped
    reason = Column(Text, nullable=True)
    detail = Column(Text, nullable=True)
    attempted_at = Column(DateTime(timezone=True), server_default=func.now())

    submission = relationship("Submission", back_populates="effects")
