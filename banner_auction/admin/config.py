"""Expose the loaded auction policy for debugging; credentials are never echoed."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..config import AuctionConfig

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_config(request: Request) -> AuctionConfig:
    return request.app.state.auction_config


@router.get("/config")
async def config(request: Request, config: AuctionConfig = Depends(_get_config)) -> dict:
    return {
        "version": request.app.version,
        "repository": f"{config.github.owner}/{config.github.repo}",
        "bidding": {
            "schedule": config.bidding.schedule,
            "duration_days": config.bidding.duration_days,
            "minimum_bid": config.bidding.minimum_bid,
            "increment": config.bidding.increment,
        },
        "approval": {
            "mode": config.approval.mode,
            "allowed_reactions": list(config.approval.allowed_reactions),
            "owner": config.approval_owner,
        },
        "payment": {
            "required": config.payment_required,
            "allow_unlinked_bids": config.payment.allow_unlinked_bids,
            "unlinked_grace_hours": config.payment.unlinked_grace_hours,
            "fee_percent": config.payment.fee_percent,
        },
        "enforcement": {
            "require_payment_before_bid": config.enforcement.require_payment_before_bid,
            "strikethrough_unlinked": config.enforcement.strikethrough_unlinked,
        },
        "storage_backend": config.storage.backend,
        "retry": {
            "attempts": config.retry.attempts,
            "delay_seconds": config.retry.delay_seconds,
        },
    }
