"""Opening of a new bidding period and its pinned issue."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from .. import messages
from ..config import AuctionConfig
from ..github.client import GitHubClient
from ..periods.models import BiddingPeriod
from ..periods.store import PeriodStore
from ..storage.codec import CorruptedStateError
from ..transport.retry import with_retry
from ..transport.timestamps import utc_now
from .notify import Notifier
from .results import FailureReason, OperationResult

logger = logging.getLogger(__name__)

ISSUE_LABELS = ["bidme", "sponsorship"]


class PeriodOpener:
    def __init__(
        self,
        config: AuctionConfig,
        periods: PeriodStore,
        github: GitHubClient,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._config = config
        self._periods = periods
        self._github = github
        self._notifier = Notifier(github)
        self._clock = clock

    async def open(self) -> OperationResult:
        try:
            snapshot = await self._periods.load()
        except CorruptedStateError as exc:
            logger.error("opener: period state is corrupted: %s", exc)
            return OperationResult.failed(FailureReason.CORRUPTED, str(exc))
        if snapshot.period is not None and snapshot.period.is_open:
            return OperationResult.failed(
                FailureReason.PERIOD_ALREADY_OPEN,
                f"Bidding period {snapshot.period.period_id} is already open",
            )

        start = self._clock()
        end = start + timedelta(days=self._config.bidding.duration_days)
        period = BiddingPeriod.opening(start, end)
        if await self._periods.has_archive(period.period_id):
            return OperationResult.failed(
                FailureReason.ARCHIVE_CONFLICT,
                f"Bidding period {period.period_id} was already held and archived; "
                "open the next period on a later day",
            )

        if self._github.is_configured:
            body = messages.issue_body(self._config, period, now=start)
            issue = await with_retry(
                lambda: self._github.create_issue(messages.issue_title(period), body, ISSUE_LABELS),
                self._config.retry,
            )
            period.issue_number = issue.number
            period.issue_url = issue.html_url
            period.issue_node_id = issue.node_id or None
            logger.info("opener: created bidding issue #%s", issue.number)
        else:
            logger.warning("opener: GitHub repository not configured; no bidding issue created")

        await self._periods.save(period)
        logger.info("opener: period %s open until %s", period.period_id, period.end_date)

        if period.issue_node_id:
            await self._notifier.attempt(
                "opener:pin", lambda: self._github.pin_issue(period.issue_node_id)
            )
        return OperationResult.ok(
            f"Bidding period {period.period_id} opened until {period.end_date}",
            period=period.to_dict(),
        )
