"""Parsing and policy validation of bid comments.

Malformed input is an expected outcome here: nothing in this module raises
for bad comment text, it reports.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from urllib.parse import urlsplit

from ..config import AuctionConfig

REQUIRED_FIELDS = ("amount", "banner_url", "destination_url", "contact")

_FENCE_RE = re.compile(r"```ya?ml[^\S\n]*\n(.*?)```", re.DOTALL)
_FIELD_RE = re.compile(r"^\s*(\w+)\s*:\s*(.+?)\s*$")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_HANDLE_RE = re.compile(r"^@[\w-]+$")

BID_EXAMPLE = (
    "```yaml\n"
    "amount: 100\n"
    "banner_url: https://example.com/banner.png\n"
    "destination_url: https://example.com\n"
    "contact: you@example.com\n"
    "```"
)

BID_FORMAT_HELP = "Please use the YAML format:\n\n" + BID_EXAMPLE


@dataclass(frozen=True)
class ParsedBid:
    amount: float
    banner_url: str
    destination_url: str
    contact: str


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


@dataclass
class ValidationResult:
    errors: list[FieldError] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def _parse_amount(raw: str) -> float | None:
    cleaned = raw.strip().lstrip("$").replace(",", "")
    try:
        value = float(cleaned)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return int(value) if value.is_integer() else value


def parse_bid_comment(body: str | None) -> ParsedBid | None:
    """Extract a bid from the first fenced YAML block; all four fields or nothing."""
    if not body:
        return None
    match = _FENCE_RE.search(body)
    if not match:
        return None
    fields: dict[str, str] = {}
    for line in match.group(1).splitlines():
        field_match = _FIELD_RE.match(line)
        if field_match:
            fields[field_match.group(1)] = field_match.group(2)
    if any(not fields.get(name) for name in REQUIRED_FIELDS):
        return None
    amount = _parse_amount(fields["amount"])
    if amount is None:
        return None
    return ParsedBid(
        amount=amount,
        banner_url=fields["banner_url"],
        destination_url=fields["destination_url"],
        contact=fields["contact"],
    )


def _check_url(field_name: str, label: str, value: str) -> FieldError | None:
    parts = urlsplit(value)
    if not parts.scheme or not parts.netloc:
        return FieldError(field_name, f"{label} is not a valid URL")
    if parts.scheme.lower() not in ("http", "https"):
        return FieldError(field_name, f"{label} must use http or https protocol")
    return None


def _is_multiple(amount: float, increment: float) -> bool:
    try:
        return Decimal(str(amount)) % Decimal(str(increment)) == 0
    except (InvalidOperation, ZeroDivisionError):
        return False


def _format_money(value: float) -> str:
    return f"{value:g}"


def validate_bid(bid: ParsedBid, config: AuctionConfig) -> ValidationResult:
    """Run every policy check and collect all violations."""
    result = ValidationResult()
    bidding = config.bidding

    if bid.amount < bidding.minimum_bid:
        result.errors.append(
            FieldError("amount", f"Bid must be at least ${_format_money(bidding.minimum_bid)}")
        )
    if bidding.increment and not _is_multiple(bid.amount, bidding.increment):
        result.errors.append(
            FieldError("amount", f"Bid must be in increments of ${_format_money(bidding.increment)}")
        )

    for field_name, label, value in (
        ("banner_url", "Banner URL", bid.banner_url),
        ("destination_url", "Destination URL", bid.destination_url),
    ):
        error = _check_url(field_name, label, value)
        if error:
            result.errors.append(error)

    if not _EMAIL_RE.match(bid.contact) and not _HANDLE_RE.match(bid.contact):
        result.errors.append(
            FieldError("contact", "Contact must be a valid email address or GitHub username (@user)")
        )

    result.errors.extend(check_prohibited_content(bid, config))
    return result


def check_prohibited_content(bid: ParsedBid, config: AuctionConfig) -> list[FieldError]:
    checkable = " ".join((bid.banner_url, bid.destination_url, bid.contact)).lower()
    return [
        FieldError("content", f'Content contains prohibited keyword: "{keyword}"')
        for keyword in config.content.prohibited
        if keyword and keyword.lower() in checkable
    ]
