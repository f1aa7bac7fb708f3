"""Admission of bid comments into the open bidding period."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from .. import messages
from ..bidders.registry import BidderStore
from ..config import AuctionConfig
from ..github.client import GitHubAPIError, GitHubClient
from ..periods.fsm import BidStatus, initial_status
from ..periods.models import Bid, BiddingPeriod
from ..periods.store import PeriodStore, PeriodUnavailableError
from ..storage.codec import CorruptedStateError
from ..transport.retry import with_retry
from ..transport.timestamps import format_timestamp, utc_now
from ..validation.bids import BID_FORMAT_HELP, parse_bid_comment, validate_bid
from .notify import Notifier
from .results import FailureReason, OperationResult

logger = logging.getLogger(__name__)

COMMENT_NOT_FOUND = "Comment not found — it may have been deleted"


class _Outbid(Exception):
    def __init__(self, highest: float) -> None:
        super().__init__(highest)
        self.highest = highest


class BidAdmissionService:
    def __init__(
        self,
        config: AuctionConfig,
        periods: PeriodStore,
        bidders: BidderStore,
        github: GitHubClient,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._config = config
        self._periods = periods
        self._bidders = bidders
        self._github = github
        self._notifier = Notifier(github)
        self._clock = clock

    async def admit(self, comment_id: int, period_id: str | None = None) -> OperationResult:
        try:
            period = await self._periods.load_open(period_id)
        except PeriodUnavailableError as exc:
            return OperationResult.failed(exc.reason, exc.message)
        except CorruptedStateError as exc:
            logger.error("admission: period state is corrupted: %s", exc)
            return OperationResult.failed(FailureReason.CORRUPTED, str(exc))

        try:
            comment = await with_retry(
                lambda: self._github.get_comment(comment_id), self._config.retry
            )
        except GitHubAPIError as exc:
            if exc.is_not_found:
                logger.warning("admission: comment %s not found", comment_id)
                return OperationResult.failed(FailureReason.COMMENT_NOT_FOUND, COMMENT_NOT_FOUND)
            raise

        if messages.is_service_comment(comment.body):
            logger.info("admission: comment %s was posted by this service; skipped", comment_id)
            return OperationResult.failed(
                FailureReason.INVALID_BID, "Comment was posted by the auction service, not a bidder"
            )

        parsed = parse_bid_comment(comment.body)
        if parsed is None:
            await self._notifier.comment(
                "admission:invalid_format", period.issue_number, messages.invalid_format_comment()
            )
            return OperationResult.failed(
                FailureReason.INVALID_BID, f"Could not parse bid. {BID_FORMAT_HELP}"
            )

        validation = validate_bid(parsed, self._config)
        if not validation.valid:
            await self._notifier.comment(
                "admission:rejected",
                period.issue_number,
                messages.rejected_bid_comment(validation.errors),
            )
            details = "\n".join(f"- {error.message}" for error in validation.errors)
            return OperationResult.failed(
                FailureReason.INVALID_BID, f"Bid validation failed:\n{details}", validation.errors
            )

        # Other invocations may have written since the first read.
        try:
            period = await self._periods.load_open(period_id)
        except PeriodUnavailableError as exc:
            return OperationResult.failed(exc.reason, exc.message)
        except CorruptedStateError as exc:
            return OperationResult.failed(FailureReason.CORRUPTED, str(exc))

        existing = period.find_bid(comment_id)
        if existing is not None:
            logger.info("admission: comment %s already recorded; nothing to do", comment_id)
            return OperationResult.ok(
                f"Bid for comment {comment_id} already recorded ({existing.status.value})",
                bid=existing.to_dict(),
            )

        highest = period.current_highest()
        if highest is not None and parsed.amount <= highest:
            return await self._reject_too_low(period, parsed.amount, highest)

        now = self._clock()
        registry = await self._bidders.load()
        bidder = comment.author
        linked = registry.is_payment_linked(bidder)
        status = initial_status(
            payment_required=self._config.payment_required,
            payment_linked=linked,
            approval_mode=self._config.approval.mode,
        )
        bid = Bid(
            bidder=bidder,
            amount=parsed.amount,
            banner_url=parsed.banner_url,
            destination_url=parsed.destination_url,
            contact=parsed.contact,
            status=status,
            comment_id=comment_id,
            timestamp=format_timestamp(now),
        )

        def append(current: BiddingPeriod) -> None:
            top = current.current_highest()
            if top is not None and bid.amount <= top:
                raise _Outbid(top)
            current.bids.append(bid)

        try:
            period, _ = await self._periods.update(append, period_id)
        except _Outbid as exc:
            return await self._reject_too_low(period, parsed.amount, exc.highest)
        except PeriodUnavailableError as exc:
            return OperationResult.failed(exc.reason, exc.message)
        except CorruptedStateError as exc:
            return OperationResult.failed(FailureReason.CORRUPTED, str(exc))
        logger.info(
            "admission: bid of %s by %s recorded as %s", bid.amount, bidder, status.value
        )

        newly_warned = False
        if status is BidStatus.UNLINKED_PENDING:
            newly_warned = await self._start_warning(bidder, now)

        await self._notify_recorded(period, bid, comment_id, linked, newly_warned)

        if status is BidStatus.UNLINKED_PENDING:
            message = (
                f"Bid of {messages.money(bid.amount)} by @{bidder} recorded but paused"
                " — payment not linked"
            )
        else:
            label = "approved" if status is BidStatus.APPROVED else "pending approval"
            message = f"Bid of {messages.money(bid.amount)} by @{bidder} accepted ({label})"
        return OperationResult.ok(message, bid=bid.to_dict())

    async def _start_warning(self, bidder: str, now: datetime) -> bool:
        """Begin the bidder's grace cycle once their bid is on record; True for a new cycle."""
        registry = await self._bidders.load()
        newly_warned = registry.warn(bidder, self._config.payment.unlinked_grace_hours, now=now)
        if newly_warned:
            await self._bidders.save(registry)
        return newly_warned

    async def _reject_too_low(
        self, period: BiddingPeriod, amount: float, highest: float
    ) -> OperationResult:
        await self._notifier.comment(
            "admission:bid_too_low",
            period.issue_number,
            messages.bid_too_low_comment(amount, highest),
        )
        return OperationResult.failed(
            FailureReason.BID_TOO_LOW, messages.bid_too_low_message(amount, highest)
        )

    async def _notify_recorded(
        self,
        period: BiddingPeriod,
        bid: Bid,
        comment_id: int,
        linked: bool,
        newly_warned: bool,
    ) -> None:
        await self._notifier.refresh_issue(
            "admission:update_issue",
            period.issue_number,
            lambda body: messages.refresh_issue_body(body, period.bids),
        )
        if bid.status is BidStatus.UNLINKED_PENDING:
            if self._config.enforcement.strikethrough_unlinked:
                await self._notifier.edit_comment(
                    "admission:strikethrough", comment_id, messages.strike_through
                )
            if newly_warned:
                await self._notifier.comment(
                    "admission:payment_paused",
                    period.issue_number,
                    messages.payment_paused_comment(bid, self._config),
                )
            return

        text = messages.accepted_comment(bid, self._config)
        if self._config.payment.allow_unlinked_bids and not linked:
            text += "\n\n" + messages.unlinked_payment_note(bid)
        await self._notifier.comment("admission:confirmation", period.issue_number, text)
