"""Shared fixtures for the auction unit tests."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock

import pytest

from banner_auction.bidders.registry import BidderStore
from banner_auction.config import build_auction_config
from banner_auction.github.client import Comment, Issue
from banner_auction.periods.fsm import BidStatus
from banner_auction.periods.models import Bid, BiddingPeriod
from banner_auction.periods.store import PeriodStore
from banner_auction.storage.in_memory import InMemoryStorage
from banner_auction.transport.timestamps import format_timestamp
from banner_auction.validation.validator import get_schema_registry

TEST_ENV = {
    "GITHUB_REPOSITORY": "acme/widgets",
    "GITHUB_REPOSITORY_OWNER": "acme",
    "GITHUB_TOKEN": "ghp_test",
    "GITHUB_WEBHOOK_SECRET": "webhook-secret",
}

PERIOD_START = datetime(2026, 3, 1, tzinfo=timezone.utc)
PERIOD_END = datetime(2026, 3, 8, tzinfo=timezone.utc)


def make_config(data: dict[str, Any] | None = None, env: dict[str, str] | None = None):
    merged: dict[str, Any] = {"retry": {"attempts": 2, "delay_seconds": 0}}
    for key, value in (data or {}).items():
        merged[key] = value
    return build_auction_config(merged, env=TEST_ENV if env is None else env)


def bid_comment(amount: Any = 100, *, contact: str = "alice@example.com") -> str:
    return (
        "Here is my bid!\n\n"
        "```yaml\n"
        f"amount: {amount}\n"
        "banner_url: https://example.com/banner.png\n"
        "destination_url: https://example.com\n"
        f"contact: {contact}\n"
        "```\n"
    )


def make_bid(
    bidder: str,
    amount: float,
    status: BidStatus,
    comment_id: int,
    *,
    timestamp: str = "2026-03-01T12:00:00.000Z",
) -> Bid:
    return Bid(
        bidder=bidder,
        amount=amount,
        banner_url="https://example.com/banner.png",
        destination_url="https://example.com",
        contact=f"{bidder}@example.com",
        status=status,
        comment_id=comment_id,
        timestamp=timestamp,
    )


def open_period(bids: list[Bid] | None = None) -> BiddingPeriod:
    period = BiddingPeriod.opening(
        PERIOD_START,
        PERIOD_END,
        issue_number=42,
        issue_url="https://github.com/acme/widgets/issues/42",
        issue_node_id="I_kwDOtest",
    )
    period.bids.extend(bids or [])
    return period


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def schemas():
    return get_schema_registry()


@pytest.fixture
def period_store(storage, schemas):
    return PeriodStore(storage, schemas)


@pytest.fixture
def bidder_store(storage, schemas):
    return BidderStore(storage, schemas)


@pytest.fixture
def mock_github():
    """GitHub client double; every call succeeds unless a test says otherwise."""
    github = AsyncMock()
    github.is_configured = True
    github.owner = "acme"
    github.repo = "widgets"
    github.get_issue.return_value = Issue(
        number=42,
        body="### 🔝 Current Top Bid\n\nNo bids yet\n\n### Bid Table\n\nnone\n\n### Deadline\n\nsoon",
        html_url="https://github.com/acme/widgets/issues/42",
        node_id="I_kwDOtest",
        state="open",
    )
    github.list_reactions.return_value = []
    return github


@pytest.fixture
def mock_stripe():
    stripe = AsyncMock()
    stripe.is_configured = False
    return stripe


def comment(comment_id: int, author: str, body: str) -> Comment:
    return Comment(id=comment_id, body=body, author=author, created_at=format_timestamp(PERIOD_START))
