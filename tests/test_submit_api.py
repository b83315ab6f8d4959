"""HTTP tests for the public /submit endpoints."""

from submission_gateway.domain.submissions.router import (
    get_security_gate,
    get_submission_orchestrator,
    resolve_submission_type,
)
from submission_gateway.domain.submissions.service import PERSIST_ERROR, SubmissionOrchestrator
from submission_gateway.domain.submissions.types import SubmissionType
from submission_gateway.errors import UpstreamFailure
from submission_gateway.main import app


class FailingRepository:
    def save(self, envelope):
        raise UpstreamFailure("database", "connection refused")


class BrokenGate:
    def enforce(self, request):
        raise ConnectionError("redis unavailable")


class ExplodingOrchestrator:
    async def submit(self, submission_type, payload, source_ip=None):
        raise RuntimeError("boom")


class TestSubmitQuote:
    def test_accepted_quote(self, client, residential_quote, repository, notifier):
        response = client.post("/submit/quote", json=residential_quote)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["referenceId"].startswith("CUB-")
        assert body["message"].startswith("Thank you for your quote request!")
        assert response.headers["X-RateLimit-Remaining"] == "4"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Cache-Control"].startswith("no-store")

        stored = repository.get(body["referenceId"])
        assert stored.type == "residential-quote"
        assert stored.source_ip == "testclient"
        assert len(notifier.messages) == 1

    def test_commercial_quote_is_routed_by_quote_type(self, client, commercial_quote, repository):
        response = client.post("/submit/quote", json=commercial_quote)

        assert response.status_code == 200
        assert repository.get(response.json()["referenceId"]).type == "commercial-quote"

    def test_validation_errors_are_listed(self, client):
        response = client.post("/submit/quote", json={"fullName": "Jo", "email": "bad-email", "phone": "123"})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Validation failed"
        assert "Valid email is required" in body["details"]
        assert "Full name is required" not in body["details"]

    def test_invalid_json(self, client):
        response = client.post(
            "/submit/quote", content=b"{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid JSON body"

    def test_unknown_kind(self, client, residential_quote):
        response = client.post("/submit/newsletter", json=residential_quote)
        assert response.status_code == 404

    def test_feedback_and_job_application(self, client, feedback_payload, job_application):
        feedback = client.post("/submit/feedback", json=feedback_payload)
        assert feedback.status_code == 200
        assert feedback.json()["message"] == "Thank you for your feedback!"

        application = client.post("/submit/job-application", json=job_application)
        assert application.status_code == 200
        assert application.json()["message"] == "Thanks for applying! We'll be in touch soon."


class TestSecurityResponses:
    def test_bot_gets_generic_denial(self, client, residential_quote):
        response = client.post("/submit/quote", json=residential_quote, headers={"User-Agent": "curl/8.4.0"})

        assert response.status_code == 403
        assert response.json() == {"success": False, "error": "Access denied"}

    def test_foreign_origin(self, client, residential_quote):
        response = client.post("/submit/quote", json=residential_quote, headers={"Origin": "https://evil.example"})
        assert response.status_code == 403

    def test_sixth_quote_is_rate_limited(self, client, residential_quote):
        for _ in range(5):
            assert client.post("/submit/quote", json=residential_quote).status_code == 200

        response = client.post("/submit/quote", json=residential_quote)

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "3600"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        body = response.json()
        assert body["remaining"] == 0
        assert body["resetInMs"] == 3600000

    def test_gate_failure_fails_closed(self, client, residential_quote, notifier):
        app.dependency_overrides[get_security_gate] = lambda: BrokenGate()

        response = client.post("/submit/quote", json=residential_quote)

        assert response.status_code == 503
        assert response.json()["error"] == "Rate limiting service temporarily unavailable"
        assert notifier.messages == []

    def test_preflight_returns_no_content(self, client):
        response = client.options(
            "/submit/quote",
            headers={
                "Origin": "https://cleanupbros.com.au",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Content-Type",
            },
        )

        assert response.status_code == 204
        assert response.content == b""
        assert response.headers["access-control-allow-origin"] == "https://cleanupbros.com.au"


class TestServerErrors:
    def test_persist_failure_is_bad_gateway(self, client, residential_quote, notifier):
        app.dependency_overrides[get_submission_orchestrator] = lambda: SubmissionOrchestrator(
            FailingRepository(), notifier=notifier
        )

        response = client.post("/submit/quote", json=residential_quote)

        assert response.status_code == 502
        assert response.json()["error"] == PERSIST_ERROR
        assert notifier.messages == []

    def test_unexpected_error(self, client, residential_quote):
        app.dependency_overrides[get_submission_orchestrator] = lambda: ExplodingOrchestrator()

        response = client.post("/submit/quote", json=residential_quote)

        assert response.status_code == 500
        assert "boom" not in response.text

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}


class TestResolveSubmissionType:
    def test_aliases(self):
        assert resolve_submission_type("quote", {"quoteType": "airbnb"}) == SubmissionType.AIRBNB_QUOTE
        assert resolve_submission_type("quote", {"serviceType": "Commercial Office"}) == SubmissionType.COMMERCIAL_QUOTE
        assert resolve_submission_type("quote", {"serviceType": "End of Lease"}) == SubmissionType.RESIDENTIAL_QUOTE
        assert resolve_submission_type("quote", None) == SubmissionType.RESIDENTIAL_QUOTE
        assert resolve_submission_type("feedback", {"quoteType": "airbnb"}) == SubmissionType.FEEDBACK
