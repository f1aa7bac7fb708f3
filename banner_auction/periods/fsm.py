"""Bid lifecycle finite state machine."""

from __future__ import annotations

from enum import Enum


class BidStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    UNLINKED_PENDING = "unlinked_pending"
    EXPIRED = "expired"


class BidEvent(str, Enum):
    OWNER_APPROVED = "owner_approved"
    OWNER_REJECTED = "owner_rejected"
    PAYMENT_LINKED_AUTO = "payment_linked_auto"
    PAYMENT_LINKED_MANUAL = "payment_linked_manual"
    GRACE_EXPIRED = "grace_expired"


class ApprovalMode(str, Enum):
    AUTO = "auto"
    EMOJI = "emoji"


TERMINAL_STATUSES = frozenset({BidStatus.APPROVED, BidStatus.REJECTED, BidStatus.EXPIRED})

_TRANSITIONS = {
    (BidStatus.PENDING, BidEvent.OWNER_APPROVED): BidStatus.APPROVED,
    (BidStatus.PENDING, BidEvent.OWNER_REJECTED): BidStatus.REJECTED,
    (BidStatus.UNLINKED_PENDING, BidEvent.PAYMENT_LINKED_AUTO): BidStatus.APPROVED,
    (BidStatus.UNLINKED_PENDING, BidEvent.PAYMENT_LINKED_MANUAL): BidStatus.PENDING,
    (BidStatus.UNLINKED_PENDING, BidEvent.GRACE_EXPIRED): BidStatus.EXPIRED,
}


def transition(current: BidStatus, event: BidEvent) -> BidStatus:
    try:
        return _TRANSITIONS[(current, event)]
    except KeyError as exc:
        raise ValueError(f"invalid transition from {current.value} via {event.value}") from exc


def initial_status(
    *,
    payment_required: bool,
    payment_linked: bool,
    approval_mode: ApprovalMode | str,
) -> BidStatus:
    """Status a freshly admitted bid enters with.

    | payment required | linked | mode  | status           |
    |------------------|--------|-------|------------------|
    | no               | -      | auto  | approved         |
    | no               | -      | emoji | pending          |
    | yes              | yes    | auto  | approved         |
    | yes              | yes    | emoji | pending          |
    | yes              | no     | any   | unlinked_pending |
    """
    if payment_required and not payment_linked:
        return BidStatus.UNLINKED_PENDING
    if ApprovalMode(approval_mode) is ApprovalMode.AUTO:
        return BidStatus.APPROVED
    return BidStatus.PENDING


def restoration_event(approval_mode: ApprovalMode | str) -> BidEvent:
    """Event that restores an unlinked bid once payment is linked; never bypasses approval."""
    if ApprovalMode(approval_mode) is ApprovalMode.AUTO:
        return BidEvent.PAYMENT_LINKED_AUTO
    return BidEvent.PAYMENT_LINKED_MANUAL
