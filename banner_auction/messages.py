"""Markdown rendered into issue comments, the bidding issue body, and the README."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Iterable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .config import AuctionConfig
from .periods.fsm import BidStatus
from .periods.models import Bid, BiddingPeriod
from .transport.timestamps import parse_timestamp, utc_now
from .validation.bids import BID_EXAMPLE, BID_FORMAT_HELP, FieldError

BANNER_START = "<!-- BIDME:BANNER:START -->"
BANNER_END = "<!-- BIDME:BANNER:END -->"
POWERED_BY = "---\n*Powered by [BidMe](https://github.com/danarrib/bidme)*"
SERVICE_MARKER = "<!-- BIDME:SERVICE -->"

_BANNER_RE = re.compile(re.escape(BANNER_START) + r".*?" + re.escape(BANNER_END), re.DOTALL)
_TOP_BID_RE = re.compile(r"### 🔝 Current Top Bid\n\n.*?(?=\n\n### )", re.DOTALL)
_BID_TABLE_RE = re.compile(r"### Bid Table\n\n.*?(?=\n\n### )", re.DOTALL)

_STATUS_EMOJI = {
    BidStatus.PENDING: "⏳",
    BidStatus.APPROVED: "✅",
    BidStatus.REJECTED: "❌",
    BidStatus.UNLINKED_PENDING: "⚠️",
    BidStatus.EXPIRED: "🕐",
}

# GitHub reports reactions by content name rather than by emoji.
_REACTION_NAMES = {
    "👍": "+1",
    "👎": "-1",
    "😄": "laugh",
    "🎉": "hooray",
    "😕": "confused",
    "❤️": "heart",
    "❤": "heart",
    "🚀": "rocket",
    "👀": "eyes",
}

_TABLE_HEADER = "| Rank | Bidder | Amount | Status | Banner Preview |\n|------|--------|--------|--------|----------------|"


def money(amount: float) -> str:
    return f"${amount:g}" if isinstance(amount, float) else f"${amount}"


def normalize_reaction(value: str) -> str:
    value = value.strip()
    return _REACTION_NAMES.get(value, value.lower())


def mark_service_comment(body: str) -> str:
    """Tag a comment as posted by this service so webhook deliveries of it are skipped."""
    if SERVICE_MARKER in body:
        return body
    return f"{body}\n\n{SERVICE_MARKER}"


def is_service_comment(body: str | None) -> bool:
    return SERVICE_MARKER in (body or "")


# Bidding issue ----------------------------------------------------------------


def bid_table(bids: Iterable[Bid]) -> str:
    ranked = sorted(bids, key=lambda bid: bid.amount, reverse=True)
    if not ranked:
        return f"{_TABLE_HEADER}\n| — | No bids yet | — | — | — |"
    rows = [
        f"| {rank} | @{bid.bidder} | {money(bid.amount)} | "
        f"{_STATUS_EMOJI.get(bid.status, '⏳')} {bid.status.value} | [preview]({bid.banner_url}) |"
        for rank, bid in enumerate(ranked, start=1)
    ]
    return "\n".join([_TABLE_HEADER, *rows])


def top_bid_line(bids: Iterable[Bid]) -> str:
    approved = [bid for bid in bids if bid.status is BidStatus.APPROVED]
    if not approved:
        return "No bids yet"
    top = max(approved, key=lambda bid: bid.amount)
    return f"**{money(top.amount)}** by @{top.bidder} — [view bid](#issuecomment-{top.comment_id})"


def _deadline_text(end_date: str, now: datetime | None = None) -> str:
    end = parse_timestamp(end_date)
    remaining = end - (now or utc_now())
    days = max(0, remaining.days + (1 if remaining.seconds or remaining.microseconds else 0))
    countdown = f"{days} day{'' if days == 1 else 's'} remaining" if days > 0 else "Bidding has ended"
    return f"**{end.strftime('%A, %B %d, %Y')}** — {countdown}"


def issue_body(config: AuctionConfig, period: BiddingPeriod, *, now: datetime | None = None) -> str:
    bidding = config.bidding
    banner = config.banner
    sections = [
        f"## 🏷️ Banner Sponsorship — {bidding.schedule} Bidding Period",
        f"### 🔝 Current Top Bid\n\n{top_bid_line(period.bids)}",
        "### Rules\n"
        f"- **Minimum bid:** {money(bidding.minimum_bid)}\n"
        f"- **Bid increment:** {money(bidding.increment)}\n"
        f"- **Accepted banner formats:** {', '.join(banner.formats)}\n"
        f"- **Banner dimensions:** {banner.width}x{banner.height}px\n"
        f"- **Max file size:** {banner.max_size_kb}KB",
        f"### Bid Table\n\n{bid_table(period.bids)}",
        f"### How to Bid\n\nPost a comment with the following format:\n\n{BID_EXAMPLE}",
        f"### Deadline\n\n{_deadline_text(period.end_date, now)}\n\n"
        "Bids must be submitted before the deadline. The highest approved bid wins the banner slot.\n\n"
        + POWERED_BY,
    ]
    return "\n\n".join(sections)


def refresh_issue_body(body: str, bids: list[Bid]) -> str:
    """Replace the top-bid and bid-table sections, leaving everything else untouched."""
    body = _TOP_BID_RE.sub(lambda _: f"### 🔝 Current Top Bid\n\n{top_bid_line(bids)}", body)
    return _BID_TABLE_RE.sub(lambda _: f"### Bid Table\n\n{bid_table(bids)}", body)


def issue_title(period: BiddingPeriod) -> str:
    return (
        f"🎯 BidMe: Banner Bidding — {period.start_date.split('T')[0]}"
        f" to {period.end_date.split('T')[0]}"
    )


# Admission --------------------------------------------------------------------


def invalid_format_comment() -> str:
    return f"❌ **Invalid bid format**\n\nCould not parse bid. {BID_FORMAT_HELP}"


def rejected_bid_comment(errors: Iterable[FieldError]) -> str:
    return "❌ **Bid rejected**\n\n" + "\n".join(f"- {error.message}" for error in errors)


def bid_too_low_message(amount: float, highest: float) -> str:
    return f"Bid of {money(amount)} must be higher than the current highest bid of {money(highest)}"


def bid_too_low_comment(amount: float, highest: float) -> str:
    return f"❌ **Bid too low**\n\n{bid_too_low_message(amount, highest)}"


def accepted_comment(bid: Bid, config: AuctionConfig) -> str:
    if bid.status is BidStatus.APPROVED:
        label = "✅ Approved (auto-accept)"
    else:
        label = "⏳ Pending owner approval"
    text = (
        f"✅ **Bid accepted!**\n\n@{bid.bidder} has placed a bid of **{money(bid.amount)}**."
        f"\n\nStatus: {label}"
    )
    if bid.status is BidStatus.PENDING:
        reactions = " or ".join(config.approval.allowed_reactions)
        text += f"\n\n> **Repo owner:** React to this comment with {reactions} to approve this bid."
    return text


def unlinked_payment_note(bid: Bid) -> str:
    return (
        f"ℹ️ @{bid.bidder} — No payment method is linked to your account yet. "
        "Your bid is recorded, but please set up payment before the period closes."
    )


def payment_paused_comment(bid: Bid, config: AuctionConfig) -> str:
    hours = config.payment.unlinked_grace_hours
    text = (
        f"⚠️ @{bid.bidder} — Your bid of **{money(bid.amount)}** is paused because no payment "
        f"method is linked.\n\nLink a payment method within **{hours:g} hours** to activate it, "
        "otherwise the bid will expire."
    )
    if config.payment.payment_link:
        text += f"\n\n**[Set up payment →]({config.payment.payment_link})**"
    return text


def strike_through(body: str) -> str:
    if body.startswith("~~") and body.endswith("~~"):
        return body
    return f"~~{body}~~"


def remove_strike_through(body: str) -> str:
    if len(body) >= 4 and body.startswith("~~") and body.endswith("~~"):
        return body[2:-2]
    return body


# Approval and grace -----------------------------------------------------------


def approval_comment(bid: Bid) -> str:
    label = "✅ Approved" if bid.status is BidStatus.APPROVED else "❌ Rejected"
    return f"{label} — Bid by @{bid.bidder} for **{money(bid.amount)}** has been {bid.status.value}."


def restored_comment(bid: Bid) -> str:
    return f"✅ @{bid.bidder} — Payment linked! Your bid of **{money(bid.amount)}** is now active."


def expired_comment(bid: Bid) -> str:
    return f"❌ @{bid.bidder} — Your bid has been removed — grace period expired without payment linked."


def payment_setup_comment(username: str, url: str) -> str:
    return (
        f"💳 @{username} — Set up your payment method to activate your bid:\n\n"
        f"**[Click here to set up payment]({url})**\n\n"
        "After completing payment setup, your bid will be activated on the next grace period check."
    )


# Closing ----------------------------------------------------------------------


def append_tracking_params(url: str, config: AuctionConfig) -> str:
    if not config.tracking.append_utm:
        return url
    params = config.tracking.utm_params.replace("{owner}", config.github.owner).replace(
        "{repo}", config.github.repo
    )
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    existing = {key for key, _ in query}
    for key, value in parse_qsl(params, keep_blank_values=True):
        if key not in existing:
            query.append((key, value))
    return urlunsplit(parts._replace(query=urlencode(query, safe="/")))


def banner_block(bid: Bid, tracking_url: str) -> str:
    return (
        f"{BANNER_START}\n"
        f"[![Sponsored banner]({bid.banner_url})]({tracking_url})\n"
        "<sub>Sponsored via [BidMe](https://github.com/danarrib/bidme)</sub>\n"
        f"{BANNER_END}"
    )


def replace_banner(readme: str, block: str) -> str | None:
    """Swap the marked banner region; None when the README has no markers."""
    if not _BANNER_RE.search(readme):
        return None
    return _BANNER_RE.sub(lambda _: block, readme, count=1)


def winner_announcement(bid: Bid, period: BiddingPeriod, payment_status: str | None) -> str:
    if payment_status == "paid":
        payment = "✅ Payment of the winning bid was charged successfully."
    elif payment_status == "failed":
        payment = "> ⚠️ The payment could not be charged. The repository owner will follow up."
    elif payment_status == "pending":
        payment = "> No payment method is on file. Please contact the repository owner to arrange payment."
    else:
        payment = "> Payment processing is not configured. Please contact the repository owner to arrange payment."
    return (
        "## 🏆 Bidding Period Closed — Winner Announced!\n\n"
        f"Congratulations **@{bid.bidder}**! 🎉\n\n"
        f"Your bid of **{money(bid.amount)}** has won the banner slot for this period.\n\n"
        "| Detail | Value |\n|--------|-------|\n"
        f"| Winner | @{bid.bidder} |\n"
        f"| Amount | {money(bid.amount)} |\n"
        f"| Period | {period.start_date.split('T')[0]} to {period.end_date.split('T')[0]} |\n"
        f"| Banner | [View]({bid.banner_url}) |\n"
        f"| Destination | {bid.destination_url} |\n\n"
        f"### 💳 Payment\n\n{payment}\n\n"
        "Thank you to all bidders!\n\n" + POWERED_BY
    )


def no_winner_announcement(period: BiddingPeriod) -> str:
    return (
        "## 📭 Bidding Period Closed — No Winner\n\n"
        f"The bidding period (**{period.start_date.split('T')[0]}** to "
        f"**{period.end_date.split('T')[0]}**) has ended with no approved bids.\n\n"
        "The banner slot remains unchanged. A new bidding period will open on the next "
        "scheduled cycle.\n\n" + POWERED_BY
    )
