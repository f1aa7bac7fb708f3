"""Unit tests for the HTTP surface and GitHub webhook ingestion."""

from __future__ import annotations

from datetime import datetime, timezone

import orjson
import pytest
from fastapi.testclient import TestClient

from banner_auction import messages
from banner_auction.auction.admission import BidAdmissionService
from banner_auction.auction.approval import ApprovalService
from banner_auction.auction.closer import PeriodCloser
from banner_auction.auction.grace import GraceSweeper
from banner_auction.events.anti_replay import DeliveryReplayGuard
from banner_auction.events.handler import WebhookService
from banner_auction.main import app
from banner_auction.periods.fsm import BidStatus
from banner_auction.transport.signatures import sign_payload
from conftest import TEST_ENV, bid_comment, comment, make_bid, make_config, open_period

SECRET = TEST_ENV["GITHUB_WEBHOOK_SECRET"]


@pytest.fixture
def client(storage, schemas, period_store, bidder_store, mock_github, mock_stripe):
    """App wired to in-memory storage and mocked collaborators, without running the lifespan."""
    config = make_config({"enforcement": {"require_payment_before_bid": False}})
    admission = BidAdmissionService(
        config, period_store, bidder_store, mock_github,
        clock=lambda: datetime(2026, 3, 2, tzinfo=timezone.utc),
    )
    app.state.auction_config = config
    app.state.period_store = period_store
    app.state.bidder_store = bidder_store
    app.state.admission = admission
    app.state.approval = ApprovalService(config, period_store, mock_github)
    app.state.grace_sweeper = GraceSweeper(config, period_store, bidder_store, mock_github, mock_stripe)
    app.state.closer = PeriodCloser(config, period_store, bidder_store, mock_github, mock_stripe)
    app.state.webhook_service = WebhookService(
        config.github, schemas, period_store, admission, DeliveryReplayGuard()
    )
    app.state.start_time = datetime.now(timezone.utc)
    return TestClient(app)


def _delivery(comment_id=11, issue_number=42, action="created", user_type="User", body=None):
    return orjson.dumps(
        {
            "action": action,
            "issue": {"number": issue_number},
            "comment": {
                "id": comment_id,
                "body": bid_comment(100) if body is None else body,
                "user": {"login": "alice", "type": user_type},
            },
        }
    )


def _post_webhook(client, body, *, delivery="d-1", event="issue_comment", secret=SECRET):
    return client.post(
        "/webhooks/github",
        content=body,
        headers={
            "X-GitHub-Event": event,
            "X-GitHub-Delivery": delivery,
            "X-Hub-Signature-256": sign_payload(body, secret),
            "Content-Type": "application/json",
        },
    )


class TestRoutes:
    def test_ping(self, client):
        response = client.get("/ping")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_current_period_absent(self, client):
        response = client.get("/periods/current")
        assert response.json() == {"state": "absent", "period": None}

    def test_comment_id_must_be_integer(self, client):
        response = client.post("/periods/current/bids", json={"comment_id": "abc"})
        assert response.status_code == 422

    def test_failure_reason_maps_to_status(self, client):
        response = client.post("/periods/current/bids", json={"comment_id": 1})
        assert response.status_code == 409
        assert response.json()["detail"]["reason"] == "no_open_period"

    @pytest.mark.asyncio
    async def test_admit_route(self, client, period_store, mock_github):
        await period_store.save(open_period())
        mock_github.get_comment.return_value = comment(11, "alice", bid_comment(100))

        response = client.post("/periods/current/bids", json={"comment_id": 11})

        assert response.status_code == 200
        assert response.json()["bid"]["status"] == "pending"

    @pytest.mark.asyncio
    async def test_bid_too_low_is_422(self, client, period_store, mock_github):
        await period_store.save(open_period([make_bid("bob", 200, BidStatus.APPROVED, 1)]))
        mock_github.get_comment.return_value = comment(11, "alice", bid_comment(100))

        response = client.post("/periods/current/bids", json={"comment_id": 11})

        assert response.status_code == 422
        assert response.json()["detail"]["reason"] == "bid_too_low"

    def test_grace_sweep_and_close_without_period(self, client):
        assert client.post("/tasks/grace-sweep").status_code == 200
        close = client.post("/tasks/close")
        assert close.status_code == 200
        assert "nothing to close" in close.json()["message"]


class TestAdminRoutes:
    def test_health(self, client):
        body = client.get("/admin/health").json()
        assert body["status"] == "healthy"
        assert body["github_configured"] is True
        assert body["stripe_configured"] is False

    def test_config_hides_credentials(self, client):
        response = client.get("/admin/config")
        assert response.status_code == 200
        body = response.json()
        assert body["repository"] == "acme/widgets"
        assert body["payment"]["required"] is False
        assert "ghp_test" not in response.text
        assert "webhook-secret" not in response.text

    @pytest.mark.asyncio
    async def test_bidders_listing(self, client, bidder_store):
        registry = await bidder_store.load()
        registry.mark_payment_linked("carol", "cus_1", "pm_1")
        await bidder_store.save(registry)

        listing = client.get("/admin/bidders").json()

        assert [record["github_username"] for record in listing] == ["carol"]
        assert listing[0]["payment_linked"] is True

    @pytest.mark.asyncio
    async def test_stats_reads_archive(self, client, period_store, mock_github):
        mock_github.get_readme.return_value = ("# Widgets\n", "sha-1")
        period = open_period([make_bid("alice", 100, BidStatus.APPROVED, 1)])
        await period_store.save(period)
        assert client.post("/tasks/close").status_code == 200

        stats = client.get("/admin/stats").json()

        assert stats["total_periods"] == 1
        assert stats["wins_by_bidder"] == {"alice": 1}
        assert stats["no_winner_rate"] == 0.0


class TestGitHubWebhook:
    def test_bad_signature_is_rejected(self, client, mock_github):
        response = _post_webhook(client, _delivery(), secret="wrong")
        assert response.status_code == 401
        mock_github.get_comment.assert_not_awaited()

    def test_missing_signature_is_rejected(self, client):
        response = client.post(
            "/webhooks/github",
            content=_delivery(),
            headers={"X-GitHub-Event": "issue_comment", "X-GitHub-Delivery": "d-1"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_comment_on_bidding_issue_is_admitted(self, client, period_store, mock_github):
        await period_store.save(open_period())
        mock_github.get_comment.return_value = comment(11, "alice", bid_comment(100))

        response = _post_webhook(client, _delivery())

        assert response.status_code == 200
        assert response.json()["status"] == "processed"
        assert len((await period_store.load()).period.bids) == 1

    @pytest.mark.asyncio
    async def test_replayed_delivery_is_ignored(self, client, period_store, mock_github):
        await period_store.save(open_period())
        mock_github.get_comment.return_value = comment(11, "alice", bid_comment(100))

        _post_webhook(client, _delivery(), delivery="d-7")
        replay = _post_webhook(client, _delivery(), delivery="d-7")

        assert replay.json() == {"status": "duplicate"}
        assert mock_github.get_comment.await_count == 1

    @pytest.mark.asyncio
    async def test_other_issue_and_bots_are_ignored(self, client, period_store, mock_github):
        await period_store.save(open_period())

        other_issue = _post_webhook(client, _delivery(issue_number=5), delivery="d-2")
        bot = _post_webhook(client, _delivery(user_type="Bot"), delivery="d-3")
        edited = _post_webhook(client, _delivery(action="edited"), delivery="d-4")

        for response in (other_issue, bot, edited):
            assert response.json()["status"] == "ignored"
        mock_github.get_comment.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_service_reply_is_ignored(self, client, period_store, mock_github):
        """The service posts as the token's user account, so its replies arrive as type User."""
        await period_store.save(open_period())
        reply = messages.mark_service_comment(messages.invalid_format_comment())

        response = _post_webhook(client, _delivery(body=reply), delivery="d-8")

        assert response.json()["status"] == "ignored"
        mock_github.get_comment.assert_not_awaited()
        assert (await period_store.load()).period.bids == []

    def test_malformed_payload_is_422(self, client):
        body = orjson.dumps({"action": "created"})
        response = _post_webhook(client, body, delivery="d-5")
        assert response.status_code == 422

    def test_unsupported_event_is_ignored(self, client):
        body = orjson.dumps({"zen": "Keep it logically awesome."})
        response = _post_webhook(client, body, event="push", delivery="d-6")
        assert response.json()["status"] == "ignored"
