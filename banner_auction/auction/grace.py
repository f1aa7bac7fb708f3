"""Grace-period sweep over bids paused for missing payment linkage."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from .. import messages
from ..bidders.registry import BidderRegistry, BidderStore
from ..config import AuctionConfig
from ..github.client import GitHubClient
from ..payments.stripe import StripeAPIError, StripeClient
from ..periods.fsm import BidEvent, BidStatus, restoration_event, transition
from ..periods.models import Bid, BiddingPeriod
from ..periods.store import PeriodStore, PeriodUnavailableError
from ..storage.codec import CorruptedStateError
from ..transport.timestamps import parse_timestamp, utc_now
from .notify import Notifier
from .results import FailureReason, OperationResult

logger = logging.getLogger(__name__)


class GraceSweeper:
    def __init__(
        self,
        config: AuctionConfig,
        periods: PeriodStore,
        bidders: BidderStore,
        github: GitHubClient,
        stripe: StripeClient,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._config = config
        self._periods = periods
        self._bidders = bidders
        self._stripe = stripe
        self._notifier = Notifier(github)
        self._clock = clock

    async def _find_stripe_link(self, username: str) -> tuple[str, str] | None:
        """Customer and card payment method on file in Stripe for ``username``, if any."""
        try:
            customers = await self._stripe.search_customers_by_metadata("github_username", username)
            for customer in customers:
                methods = await self._stripe.list_payment_methods(customer.id)
                if methods:
                    return customer.id, methods[0].id
        except StripeAPIError:
            logger.warning("grace:stripe_lookup failed for %s", username, exc_info=True)
        return None

    def _deadline(self, registry: BidderRegistry, bid: Bid) -> datetime:
        hours = self._config.payment.unlinked_grace_hours
        deadline = registry.grace_deadline(bid.bidder, hours)
        if deadline is None:
            deadline = parse_timestamp(bid.timestamp) + timedelta(hours=hours)
        return deadline

    async def sweep(self, period_id: str | None = None) -> OperationResult:
        try:
            period = await self._periods.load_open(period_id)
        except PeriodUnavailableError as exc:
            return OperationResult.ok(f"{exc.message} — nothing to check")
        except CorruptedStateError as exc:
            logger.error("grace: period state is corrupted: %s", exc)
            return OperationResult.failed(FailureReason.CORRUPTED, str(exc))

        unlinked = period.bids_with_status(BidStatus.UNLINKED_PENDING)
        if not unlinked:
            return OperationResult.ok(
                "No unlinked_pending bids to check", restored=0, expired=0, pending=0
            )

        now = self._clock()
        links: dict[str, tuple[str, str]] = {}
        if self._stripe.is_configured:
            known = await self._bidders.load()
            for username in dict.fromkeys(bid.bidder for bid in unlinked):
                if not known.is_payment_linked(username):
                    found = await self._find_stripe_link(username)
                    if found is not None:
                        links[username] = found

        # Other invocations may have written the registry during the Stripe lookups.
        registry = await self._bidders.load()
        for username, (customer_id, payment_method_id) in links.items():
            registry.mark_payment_linked(username, customer_id, payment_method_id, now=now)
            logger.info("grace: linked %s to Stripe customer %s", username, customer_id)
        if links:
            await self._bidders.save(registry)

        restore = restoration_event(self._config.approval.mode)
        decisions: dict[int, BidEvent] = {}
        for bid in unlinked:
            if registry.is_payment_linked(bid.bidder):
                decisions[bid.comment_id] = restore
            elif now >= self._deadline(registry, bid):
                decisions[bid.comment_id] = BidEvent.GRACE_EXPIRED

        def apply(current: BiddingPeriod) -> list[Bid]:
            applied = []
            for bid in current.bids:
                event = decisions.get(bid.comment_id)
                if event is not None and bid.status is BidStatus.UNLINKED_PENDING:
                    bid.status = transition(bid.status, event)
                    applied.append(bid)
            return applied

        applied: list[Bid] = []
        if decisions:
            try:
                period, applied = await self._periods.update(apply, period.period_id)
            except PeriodUnavailableError as exc:
                return OperationResult.ok(f"{exc.message} — nothing to check")
            except CorruptedStateError as exc:
                return OperationResult.failed(FailureReason.CORRUPTED, str(exc))

        restored = [bid for bid in applied if bid.status is not BidStatus.EXPIRED]
        expired = [bid for bid in applied if bid.status is BidStatus.EXPIRED]
        pending = len(period.bids_with_status(BidStatus.UNLINKED_PENDING))
        for bid in restored:
            logger.info("grace: bid %s by %s restored to %s", bid.comment_id, bid.bidder, bid.status.value)
        for bid in expired:
            logger.info("grace: bid %s by %s expired", bid.comment_id, bid.bidder)

        await self._notify(period, restored, expired)
        return OperationResult.ok(
            f"Grace check complete: {len(restored)} restored, {len(expired)} expired, "
            f"{pending} still pending",
            restored=len(restored),
            expired=len(expired),
            pending=pending,
        )

    async def _notify(self, period: BiddingPeriod, restored: list[Bid], expired: list[Bid]) -> None:
        for bid in restored:
            if self._config.enforcement.strikethrough_unlinked:
                await self._notifier.edit_comment(
                    "grace:restore_comment", bid.comment_id, messages.remove_strike_through
                )
            await self._notifier.comment(
                "grace:restore", period.issue_number, messages.restored_comment(bid)
            )
        for bid in expired:
            await self._notifier.comment(
                "grace:expire", period.issue_number, messages.expired_comment(bid)
            )
        if restored or expired:
            await self._notifier.refresh_issue(
                "grace:update_issue",
                period.issue_number,
                lambda body: messages.refresh_issue_body(body, period.bids),
            )
