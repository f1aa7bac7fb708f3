"""Winner selection helpers."""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional

from ..periods.fsm import BidStatus
from ..periods.models import Bid


def select_winner(bids: Iterable[Bid]) -> Optional[Bid]:
    """Highest approved bid; on a tie the earliest recorded one wins."""
    return max(
        (bid for bid in bids if bid.status is BidStatus.APPROVED),
        key=lambda bid: bid.amount,
        default=None,
    )


def amount_cents(amount: float) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1")))
