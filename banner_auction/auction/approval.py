"""Owner approval of pending bids through comment reactions."""

from __future__ import annotations

import logging

from .. import messages
from ..config import AuctionConfig
from ..github.client import GitHubAPIError, GitHubClient, Reaction
from ..periods.fsm import ApprovalMode, BidEvent, BidStatus, transition
from ..periods.models import Bid, BiddingPeriod
from ..periods.store import PeriodStore, PeriodUnavailableError
from ..storage.codec import CorruptedStateError
from ..transport.retry import with_retry
from .admission import COMMENT_NOT_FOUND
from .notify import Notifier
from .results import FailureReason, OperationResult

logger = logging.getLogger(__name__)


class ApprovalService:
    def __init__(self, config: AuctionConfig, periods: PeriodStore, github: GitHubClient) -> None:
        self._config = config
        self._periods = periods
        self._github = github
        self._notifier = Notifier(github)

    def _owner_approves(self, reactions: list[Reaction]) -> Reaction | None:
        owner = self._config.approval_owner.casefold()
        allowed = {messages.normalize_reaction(item) for item in self._config.approval.allowed_reactions}
        return next(
            (
                reaction
                for reaction in reactions
                if reaction.author.casefold() == owner
                and messages.normalize_reaction(reaction.content) in allowed
            ),
            None,
        )

    async def approve(self, comment_id: int, period_id: str | None = None) -> OperationResult:
        if ApprovalMode(self._config.approval.mode) is ApprovalMode.AUTO:
            return OperationResult.ok("Approval mode is auto — bids are approved on admission")

        try:
            period = await self._periods.load_open(period_id)
        except PeriodUnavailableError as exc:
            return OperationResult.failed(exc.reason, exc.message)
        except CorruptedStateError as exc:
            logger.error("approval: period state is corrupted: %s", exc)
            return OperationResult.failed(FailureReason.CORRUPTED, str(exc))

        bid = period.find_bid(comment_id)
        if bid is None:
            return OperationResult.failed(
                FailureReason.BID_NOT_FOUND,
                f"Bid with comment ID {comment_id} not found in current period",
            )
        if bid.status in (BidStatus.APPROVED, BidStatus.REJECTED):
            return OperationResult.ok(f"Bid already {bid.status.value}", bid=bid.to_dict())
        if bid.status is BidStatus.UNLINKED_PENDING:
            return OperationResult.ok(
                "Bid is paused until payment is linked; approval is deferred", bid=bid.to_dict()
            )
        if bid.status is BidStatus.EXPIRED:
            return OperationResult.ok(
                "Bid expired without payment linked; approval does not apply", bid=bid.to_dict()
            )

        try:
            reactions = await with_retry(
                lambda: self._github.list_reactions(comment_id), self._config.retry
            )
        except GitHubAPIError as exc:
            if exc.is_not_found:
                return OperationResult.failed(FailureReason.COMMENT_NOT_FOUND, COMMENT_NOT_FOUND)
            raise

        match = self._owner_approves(reactions)
        event = BidEvent.OWNER_APPROVED if match else BidEvent.OWNER_REJECTED
        if match:
            logger.info("approval: owner reacted with %s on comment %s", match.content, comment_id)

        def apply(current: BiddingPeriod) -> tuple[Bid | None, bool]:
            target = current.find_bid(comment_id)
            if target is None or target.status is not BidStatus.PENDING:
                return target, False
            target.status = transition(target.status, event)
            return target, True

        try:
            period, (updated, changed) = await self._periods.update(apply, period_id)
        except PeriodUnavailableError as exc:
            return OperationResult.failed(exc.reason, exc.message)
        except CorruptedStateError as exc:
            return OperationResult.failed(FailureReason.CORRUPTED, str(exc))

        if updated is None:
            return OperationResult.failed(
                FailureReason.BID_NOT_FOUND,
                f"Bid with comment ID {comment_id} not found in current period",
            )
        if not changed:
            return OperationResult.ok(f"Bid already {updated.status.value}", bid=updated.to_dict())
        logger.info("approval: bid %s is now %s", comment_id, updated.status.value)

        await self._notifier.refresh_issue(
            "approval:update_issue",
            period.issue_number,
            lambda body: messages.refresh_issue_body(body, period.bids),
        )
        await self._notifier.comment(
            "approval:confirmation", period.issue_number, messages.approval_comment(updated)
        )
        return OperationResult.ok(
            f"Bid by @{updated.bidder} for {messages.money(updated.amount)} has been "
            f"{updated.status.value}",
            bid=updated.to_dict(),
        )
