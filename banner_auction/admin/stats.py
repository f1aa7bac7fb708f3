"""Archive statistics endpoint."""

from __future__ import annotations

from collections import Counter
from typing import Any

from fastapi import APIRouter, Depends, Request

from ..auction.selection import select_winner
from ..periods.models import PaymentStatus
from ..periods.store import PeriodStore

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_period_store(request: Request) -> PeriodStore:
    return request.app.state.period_store


@router.get("/stats")
async def stats(periods: PeriodStore = Depends(_get_period_store)) -> dict[str, Any]:
    archived = await periods.list_archived()
    total_periods = len(archived)
    total_bids = sum(len(period.bids) for period in archived)

    bids_by_bidder: Counter[str] = Counter()
    wins_by_bidder: Counter[str] = Counter()
    status_distribution: Counter[str] = Counter()
    payment_distribution: Counter[str] = Counter()
    revenue_cents = 0

    for period in archived:
        for bid in period.bids:
            bids_by_bidder[bid.bidder] += 1
            status_distribution[bid.status.value] += 1
        winner = select_winner(period.bids)
        if winner is not None:
            wins_by_bidder[winner.bidder] += 1
        if period.payment is not None:
            payment_distribution[period.payment.payment_status.value] += 1
            if period.payment.payment_status is PaymentStatus.PAID:
                revenue_cents += period.payment.amount_cents or 0

    no_winner_count = total_periods - sum(wins_by_bidder.values())
    return {
        "total_periods": total_periods,
        "total_bids": total_bids,
        "no_winner_rate": round(no_winner_count / total_periods, 4) if total_periods else 0.0,
        "wins_by_bidder": dict(wins_by_bidder),
        "bids_by_bidder": dict(bids_by_bidder),
        "bid_status_distribution": dict(status_distribution),
        "payment_distribution": dict(payment_distribution),
        "revenue_cents": revenue_cents,
    }
