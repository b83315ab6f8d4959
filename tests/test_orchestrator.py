"""Tests for the public submission pipeline: persist first, then best-effort steps."""

import pytest

from fakes import FakeMailer, FakeNotifier, FakeWebhook
from submission_gateway.domain.submissions.service import (
    EMAIL_NOT_CONFIGURED,
    PERSIST_ERROR,
    SubmissionOrchestrator,
)
from submission_gateway.domain.submissions.types import StepStatus, SubmissionType
from submission_gateway.domain.submissions.schemas import EMAIL_REQUIRED, NAME_REQUIRED
from submission_gateway.errors import (
    ConfigurationError,
    SubmissionValidationError,
    UpstreamFailure,
)


class FailingRepository:
    """Repository whose database is down"""

    def save(self, envelope):
        raise UpstreamFailure("database", "connection refused")


class TestSubmit:
    @pytest.mark.asyncio
    async def test_residential_quote_runs_every_step(self, orchestrator, residential_quote, notifier, webhook, mailer):
        outcome = await orchestrator.submit(SubmissionType.RESIDENTIAL_QUOTE, residential_quote, "203.0.113.7")

        assert outcome.success is True
        assert outcome.reference_id.startswith("CUB-")
        assert list(outcome.step_results) == ["persist", "team_notification", "webhook_forward", "customer_email"]
        assert outcome.step_results["persist"].detail == outcome.reference_id
        assert outcome.step_results["webhook_forward"].detail == "HTTP 200"
        assert outcome.step_results["customer_email"].detail == "msg_1"

        assert outcome.reference_id in notifier.messages[0]
        assert "Jordan Smith" in notifier.messages[0]
        assert webhook.forwarded[0].reference_id == outcome.reference_id

        kind, email = mailer.sent[0]
        assert kind == "acknowledgement"
        assert email["to"] == "jordan@example.com"
        assert email["service_label"] == "Residential Cleaning"

    @pytest.mark.asyncio
    async def test_payload_is_sanitized_before_anything_sees_it(self, orchestrator, residential_quote, repository, webhook):
        residential_quote["notes"] = "Side gate <b>unlocked</b> onclick=x"
        outcome = await orchestrator.submit(SubmissionType.RESIDENTIAL_QUOTE, residential_quote)

        stored = repository.get(outcome.reference_id)
        assert stored.data["notes"] == "Side gate bunlocked/b x"
        assert webhook.forwarded[0].payload["notes"] == "Side gate bunlocked/b x"

    @pytest.mark.asyncio
    async def test_invalid_payload_raises_and_stores_nothing(self, orchestrator, residential_quote, notifier):
        residential_quote["email"] = "bad-email"

        with pytest.raises(SubmissionValidationError) as exc_info:
            await orchestrator.submit(SubmissionType.RESIDENTIAL_QUOTE, residential_quote)

        assert exc_info.value.errors == [EMAIL_REQUIRED]
        assert notifier.messages == []

    @pytest.mark.asyncio
    async def test_name_emptied_by_sanitizing_is_rejected(self, orchestrator, residential_quote, repository, notifier):
        residential_quote["fullName"] = "<>"

        with pytest.raises(SubmissionValidationError) as exc_info:
            await orchestrator.submit(SubmissionType.RESIDENTIAL_QUOTE, residential_quote)

        assert exc_info.value.errors == [NAME_REQUIRED]
        assert notifier.messages == []

    @pytest.mark.asyncio
    async def test_feedback_gets_no_acknowledgement(self, orchestrator, feedback_payload, notifier, mailer):
        outcome = await orchestrator.submit(SubmissionType.FEEDBACK, feedback_payload)

        assert outcome.success is True
        assert outcome.step_results["customer_email"].status == StepStatus.SKIPPED
        assert mailer.sent == []
        assert "⭐⭐⭐⭐⭐" in notifier.messages[0]


class TestBestEffortSteps:
    @pytest.mark.asyncio
    async def test_notification_failure_does_not_fail_submission(self, repository, webhook, calendar, billing, mailer, residential_quote):
        """Telegram is down: the submission is still accepted and the failure reported."""
        orchestrator = SubmissionOrchestrator(
            repository,
            notifier=FakeNotifier(error=UpstreamFailure("telegram", "HTTP 500", 500)),
            webhook=webhook,
            calendar=calendar,
            billing=billing,
            mailer=mailer,
        )

        outcome = await orchestrator.submit(SubmissionType.RESIDENTIAL_QUOTE, residential_quote)

        assert outcome.success is True
        assert outcome.step_results["team_notification"].status == StepStatus.FAILED
        assert outcome.step_results["team_notification"].reason == "telegram: HTTP 500"
        assert outcome.step_results["webhook_forward"].succeeded
        assert outcome.step_results["customer_email"].succeeded
        assert repository.latest_effects(outcome.reference_id)["team_notification"] == "failed"

    @pytest.mark.asyncio
    async def test_unconfigured_collaborators_are_skipped(self, repository, calendar, billing, residential_quote):
        orchestrator = SubmissionOrchestrator(
            repository,
            notifier=FakeNotifier(error=ConfigurationError("team_notification")),
            webhook=FakeWebhook(error=ConfigurationError("webhook")),
            calendar=calendar,
            billing=billing,
            mailer=FakeMailer(configured=False),
        )

        outcome = await orchestrator.submit(SubmissionType.RESIDENTIAL_QUOTE, residential_quote)

        assert outcome.success is True
        for step in ("team_notification", "webhook_forward", "customer_email"):
            assert outcome.step_results[step].status == StepStatus.SKIPPED
        assert outcome.step_results["customer_email"].reason == EMAIL_NOT_CONFIGURED

    @pytest.mark.asyncio
    async def test_effect_log_failure_does_not_change_outcome(self, orchestrator, repository, residential_quote, monkeypatch):
        def broken(*args, **kwargs):
            raise UpstreamFailure("database", "locked")

        monkeypatch.setattr(repository, "record_effects", broken)
        outcome = await orchestrator.submit(SubmissionType.RESIDENTIAL_QUOTE, residential_quote)

        assert outcome.success is True


class TestPersistFailure:
    @pytest.mark.asyncio
    async def test_nothing_else_is_attempted(self, notifier, webhook, calendar, billing, mailer, residential_quote):
        orchestrator = SubmissionOrchestrator(
            FailingRepository(),
            notifier=notifier,
            webhook=webhook,
            calendar=calendar,
            billing=billing,
            mailer=mailer,
        )

        outcome = await orchestrator.submit(SubmissionType.RESIDENTIAL_QUOTE, residential_quote)

        assert outcome.success is False
        assert outcome.reference_id is None
        assert outcome.error == PERSIST_ERROR
        assert list(outcome.step_results) == ["persist"]
        assert outcome.step_results["persist"].status == StepStatus.FAILED
        assert notifier.messages == []
        assert webhook.forwarded == []
        assert mailer.sent == []


class TestRetryFailedSteps:
    @pytest.mark.asyncio
    async def test_only_failed_steps_are_rerun(self, repository, webhook, calendar, billing, mailer, residential_quote):
        notifier = FakeNotifier(error=UpstreamFailure("telegram", "timeout"))
        orchestrator = SubmissionOrchestrator(
            repository, notifier=notifier, webhook=webhook, calendar=calendar, billing=billing, mailer=mailer
        )
        outcome = await orchestrator.submit(SubmissionType.RESIDENTIAL_QUOTE, residential_quote)

        notifier.error = None
        retried = await orchestrator.retry_failed_steps(outcome.reference_id)

        assert retried.success is True
        assert list(retried.step_results) == ["team_notification"]
        assert retried.step_results["team_notification"].succeeded
        assert len(webhook.forwarded) == 1
        assert len(mailer.sent) == 1
        assert repository.latest_effects(outcome.reference_id)["team_notification"] == "ok"

        again = await orchestrator.retry_failed_steps(outcome.reference_id)
        assert again.step_results == {}
        assert len(notifier.messages) == 2

    @pytest.mark.asyncio
    async def test_unknown_reference(self, orchestrator):
        outcome = await orchestrator.retry_failed_steps("CUB-MISSING")

        assert outcome.success is False
        assert outcome.error == "Submission not found"
