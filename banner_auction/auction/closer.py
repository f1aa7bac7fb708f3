"""Closing of the active bidding period: winner, charge, archive, publish."""

from __future__ import annotations

import logging

from .. import messages
from ..bidders.registry import BidderStore
from ..config import AuctionConfig
from ..github.client import GitHubClient
from ..payments.stripe import PaymentDeclinedError, StripeAPIError, StripeClient
from ..periods.models import Bid, BiddingPeriod, PaymentRecord, PaymentStatus, PeriodStatus
from ..periods.store import PeriodStore, SlotState
from ..storage.codec import CorruptedStateError
from .notify import Notifier
from .results import FailureReason, OperationResult
from .selection import amount_cents, select_winner

logger = logging.getLogger(__name__)


class PeriodCloser:
    def __init__(
        self,
        config: AuctionConfig,
        periods: PeriodStore,
        bidders: BidderStore,
        github: GitHubClient,
        stripe: StripeClient,
    ) -> None:
        self._config = config
        self._periods = periods
        self._bidders = bidders
        self._github = github
        self._stripe = stripe
        self._notifier = Notifier(github)

    async def close(self, period_id: str | None = None) -> OperationResult:
        try:
            snapshot = await self._periods.load()
            archived = (
                await self._periods.get_archived(snapshot.period.period_id)
                if snapshot.period is not None
                else None
            )
        except CorruptedStateError as exc:
            logger.error("closer: period state is corrupted, refusing to close: %s", exc)
            return OperationResult.failed(
                FailureReason.CORRUPTED, f"Period data is corrupted: {exc.reason}"
            )
        if snapshot.state is SlotState.ABSENT:
            return OperationResult.ok("No active bidding period — nothing to close")
        if snapshot.state is SlotState.EMPTY:
            return OperationResult.ok("Period slot is empty — nothing to close")

        period = snapshot.period
        if not period.is_open:
            return OperationResult.failed(FailureReason.PERIOD_NOT_OPEN, "Bidding period is not open")
        if period_id is not None and period.period_id != period_id:
            return OperationResult.failed(
                FailureReason.PERIOD_NOT_OPEN, f"Bidding period {period_id} is not the active period"
            )

        if archived is not None and archived.bid_ids() != period.bid_ids():
            logger.error(
                "closer: archive for %s holds a different snapshot; live period left open",
                period.period_id,
            )
            return self._archive_conflict(period)

        if archived is not None:
            # Archived by an earlier close that stopped before the reset.
            logger.warning("closer: %s already archived; finishing the close", period.period_id)
            period = archived
        winner = select_winner(period.bids)
        if archived is None:
            if winner is not None and self._stripe.is_configured:
                period.payment = await self._charge(period, winner)
            period.status = PeriodStatus.CLOSED
            if not await self._periods.archive(period):
                return self._archive_conflict(period)
        await self._periods.reset()
        logger.info(
            "closer: period %s closed (winner: %s)",
            period.period_id,
            winner.bidder if winner else "none",
        )

        await self._publish(period, winner)

        if winner is None:
            return OperationResult.ok(
                f"Period {period.period_id} closed with no approved bids", period_id=period.period_id
            )
        payment_status = period.payment.payment_status.value if period.payment else None
        return OperationResult.ok(
            f"Period {period.period_id} closed — winner @{winner.bidder} with "
            f"{messages.money(winner.amount)}",
            period_id=period.period_id,
            winner=winner.to_dict(),
            payment_status=payment_status,
        )

    @staticmethod
    def _archive_conflict(period: BiddingPeriod) -> OperationResult:
        return OperationResult.failed(
            FailureReason.ARCHIVE_CONFLICT,
            f"Archive entry for {period.period_id} already exists with different bids; "
            "period not closed",
        )

    async def _charge(self, period: BiddingPeriod, winner: Bid) -> PaymentRecord:
        cents = amount_cents(winner.amount)
        registry = await self._bidders.load()
        record = registry.get(winner.bidder)
        if record is None or not record.has_payment_reference:
            logger.warning("closer: %s has no payment method on file", winner.bidder)
            return PaymentRecord(PaymentStatus.PENDING, amount_cents=cents)

        try:
            intent = await self._stripe.charge_customer(
                customer_id=record.stripe_customer_id,
                payment_method_id=record.stripe_payment_method_id,
                amount_cents=cents,
                description=f"Banner sponsorship {period.period_id}",
                idempotency_key=period.period_id,
            )
        except PaymentDeclinedError as exc:
            logger.warning("closer: charge declined for %s: %s", winner.bidder, exc.message)
            return PaymentRecord(
                PaymentStatus.FAILED,
                amount_cents=cents,
                stripe_customer_id=record.stripe_customer_id,
                failure_code=exc.decline_code or exc.code or "card_declined",
                failure_message=exc.message,
            )
        except StripeAPIError as exc:
            logger.warning("closer: charge failed for %s", winner.bidder, exc_info=True)
            return PaymentRecord(
                PaymentStatus.FAILED,
                amount_cents=cents,
                stripe_customer_id=record.stripe_customer_id,
                failure_code=exc.error_type or "api_error",
                failure_message=exc.message,
            )

        status = PaymentStatus.PAID if intent.status == "succeeded" else PaymentStatus.PENDING
        logger.info("closer: charged %s cents to %s (%s)", cents, winner.bidder, intent.status)
        return PaymentRecord(
            status,
            amount_cents=cents,
            stripe_customer_id=record.stripe_customer_id,
            stripe_payment_intent_id=intent.id,
        )

    async def _update_readme(self, winner: Bid) -> None:
        tracking_url = messages.append_tracking_params(winner.destination_url, self._config)
        readme, sha = await self._github.get_readme()
        updated = messages.replace_banner(readme, messages.banner_block(winner, tracking_url))
        if updated is None:
            logger.warning("closer: README has no banner markers; banner not updated")
            return
        await self._github.update_readme(
            updated,
            sha,
            f"BidMe: Update banner — winner @{winner.bidder} ({messages.money(winner.amount)})",
        )

    async def _publish(self, period: BiddingPeriod, winner: Bid | None) -> None:
        if winner is not None:
            await self._notifier.attempt("closer:update_readme", lambda: self._update_readme(winner))
        if not period.issue_number:
            return
        if winner is not None:
            payment_status = period.payment.payment_status.value if period.payment else None
            text = messages.winner_announcement(winner, period, payment_status)
        else:
            text = messages.no_winner_announcement(period)
        await self._notifier.comment("closer:announce", period.issue_number, text)
        if period.issue_node_id:
            await self._notifier.attempt(
                "closer:unpin", lambda: self._github.unpin_issue(period.issue_node_id)
            )
        await self._notifier.attempt(
            "closer:close_issue", lambda: self._github.close_issue(period.issue_number)
        )
