"""Unit tests for opening periods and bidder payment setup."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from banner_auction.auction.opener import PeriodOpener
from banner_auction.auction.payment_setup import PaymentSetupService
from banner_auction.auction.results import FailureReason
from banner_auction.github.client import GitHubAPIError, Issue
from banner_auction.payments.stripe import CheckoutSession, Customer
from banner_auction.periods.models import BiddingPeriod, PeriodStatus
from banner_auction.periods.store import SlotState
from conftest import TEST_ENV, make_config, open_period

OPENED_AT = datetime(2026, 4, 1, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def opener_factory(period_store, mock_github):
    def build(data=None, env=None):
        return PeriodOpener(make_config(data, env), period_store, mock_github, clock=lambda: OPENED_AT)

    return build


class TestPeriodOpener:
    @pytest.mark.asyncio
    async def test_opens_period_and_pins_issue(self, opener_factory, period_store, mock_github):
        mock_github.create_issue.return_value = Issue(
            number=77, body="", html_url="https://github.com/acme/widgets/issues/77", node_id="I_77", state="open"
        )

        result = await opener_factory().open()

        assert result.success
        period = (await period_store.load()).period
        assert period.period_id == "period-2026-04-01"
        assert period.end_date == "2026-04-08T00:00:00.000Z"
        assert period.issue_number == 77
        title, body, _ = mock_github.create_issue.await_args.args
        assert "2026-04-01 to 2026-04-08" in title
        assert "### Bid Table" in body
        mock_github.pin_issue.assert_awaited_once_with("I_77")

    @pytest.mark.asyncio
    async def test_refuses_second_open_period(self, opener_factory, period_store, mock_github):
        await period_store.save(open_period())

        result = await opener_factory().open()

        assert result.reason is FailureReason.PERIOD_ALREADY_OPEN
        mock_github.create_issue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reopens_after_close(self, opener_factory, period_store, mock_github):
        await period_store.reset()
        mock_github.create_issue.return_value = Issue(
            number=78, body="", html_url="", node_id="", state="open"
        )

        result = await opener_factory().open()

        assert result.success
        assert (await period_store.load()).state is SlotState.PRESENT
        mock_github.pin_issue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_refuses_same_day_reopen_after_close(self, opener_factory, period_store, mock_github):
        held = BiddingPeriod.opening(OPENED_AT, OPENED_AT + timedelta(days=7), issue_number=70)
        held.status = PeriodStatus.CLOSED
        await period_store.archive(held)
        await period_store.reset()

        result = await opener_factory().open()

        assert result.reason is FailureReason.ARCHIVE_CONFLICT
        assert (await period_store.load()).state is SlotState.EMPTY
        mock_github.create_issue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pin_failure_keeps_period(self, opener_factory, period_store, mock_github):
        mock_github.create_issue.return_value = Issue(
            number=79, body="", html_url="", node_id="I_79", state="open"
        )
        mock_github.pin_issue.side_effect = GitHubAPIError(200, "pinning disabled")

        result = await opener_factory().open()

        assert result.success
        assert (await period_store.load()).period.issue_number == 79

    @pytest.mark.asyncio
    async def test_without_github_period_has_no_issue(self, opener_factory, period_store, mock_github):
        mock_github.is_configured = False

        result = await opener_factory(env={}).open()

        assert result.success
        assert (await period_store.load()).period.issue_number == 0
        mock_github.create_issue.assert_not_awaited()


@pytest.fixture
def setup_service(bidder_store, mock_github, mock_stripe):
    return PaymentSetupService(make_config(), bidder_store, mock_github, mock_stripe)


class TestPaymentSetup:
    @pytest.mark.asyncio
    async def test_requires_stripe(self, setup_service):
        result = await setup_service.setup_payment("carol", 42)
        assert result.reason is FailureReason.PAYMENT_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_creates_customer_and_posts_link(self, setup_service, bidder_store, mock_github, mock_stripe):
        mock_stripe.is_configured = True
        mock_stripe.search_customers_by_metadata.return_value = []
        mock_stripe.create_customer.return_value = Customer(id="cus_new", email=None, metadata={})
        mock_stripe.create_checkout_session.return_value = CheckoutSession(
            id="cs_1", url="https://checkout.stripe.com/c/cs_1"
        )

        result = await setup_service.setup_payment("carol", 42)

        assert result.success
        assert result.data["checkout_url"] == "https://checkout.stripe.com/c/cs_1"
        kwargs = mock_stripe.create_checkout_session.await_args.kwargs
        assert kwargs["success_url"].startswith(
            f"https://github.com/{TEST_ENV['GITHUB_REPOSITORY']}/issues/42"
        )
        record = (await bidder_store.load()).get("carol")
        assert record.stripe_customer_id == "cus_new"
        assert record.payment_linked is False
        assert "cs_1" in mock_github.add_comment.await_args.args[1]

    @pytest.mark.asyncio
    async def test_already_linked(self, setup_service, bidder_store, mock_stripe):
        mock_stripe.is_configured = True
        registry = await bidder_store.load()
        registry.mark_payment_linked("carol", "cus_1", "pm_1")
        await bidder_store.save(registry)

        result = await setup_service.setup_payment("carol", 42)

        assert result.success
        mock_stripe.create_checkout_session.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_link_payment(self, setup_service, bidder_store):
        result = await setup_service.link_payment("carol", "cus_1", "pm_1")

        assert result.success
        assert (await bidder_store.load()).is_payment_linked("carol")
