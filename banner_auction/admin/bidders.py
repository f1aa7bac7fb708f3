"""Expose bidder registry information."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from ..bidders.registry import BidderStore

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_bidder_store(request: Request) -> BidderStore:
    return request.app.state.bidder_store


@router.get("/bidders")
async def bidders(store: BidderStore = Depends(_get_bidder_store)) -> list[dict[str, Any]]:
    registry = await store.load()
    inventory = []
    for record in sorted(registry.all(), key=lambda item: item.github_username.lower()):
        inventory.append(
            {
                "github_username": record.github_username,
                "payment_linked": record.payment_linked,
                "linked_at": record.linked_at,
                "warned_at": record.warned_at,
                "has_payment_method": record.has_payment_reference,
            }
        )
    return inventory
