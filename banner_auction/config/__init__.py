"""Configuration helpers for the auction server."""

from __future__ import annotations

import os
from copy import deepcopy
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml

_DEFAULT_AUCTION_CONFIG = Path(__file__).resolve().parent / "auction.yaml"

DEFAULTS: dict[str, Any] = {
    "bidding": {
        "schedule": "monthly",
        "duration": 7,
        "minimum_bid": 50,
        "increment": 5,
    },
    "banner": {
        "width": 800,
        "height": 100,
        "formats": ["png", "jpg", "svg"],
        "max_size": 200,
    },
    "approval": {
        "mode": "emoji",
        "allowed_reactions": ["👍"],
        "owner": None,
    },
    "payment": {
        "provider": "stripe",
        "allow_unlinked_bids": False,
        "unlinked_grace_hours": 24,
        "payment_link": "",
        "fee_percent": 10,
    },
    "enforcement": {
        "require_payment_before_bid": True,
        "strikethrough_unlinked": True,
    },
    "tracking": {
        "append_utm": True,
        "utm_params": "source=bidme&repo={owner}/{repo}",
    },
    "content_guidelines": {
        "prohibited": ["adult content", "gambling", "misleading claims"],
        "required": ["alt text", "clear branding"],
    },
    "storage": {
        "backend": "filesystem",
        "options": {"data_dir": ".bidme/data"},
    },
    "retry": {
        "attempts": 2,
        "delay_seconds": 1.0,
    },
}

SCHEDULES = ("weekly", "monthly")
APPROVAL_MODES = ("auto", "emoji")
PAYMENT_PROVIDERS = ("stripe",)


class ConfigValidationError(ValueError):
    """Raised when the auction configuration holds unusable values."""


@dataclass(frozen=True)
class BiddingPolicy:
    schedule: str
    duration_days: int
    minimum_bid: float
    increment: float


@dataclass(frozen=True)
class BannerPolicy:
    width: int
    height: int
    formats: tuple[str, ...]
    max_size_kb: int


@dataclass(frozen=True)
class ApprovalPolicy:
    mode: str
    allowed_reactions: tuple[str, ...]
    owner: str | None = None


@dataclass(frozen=True)
class PaymentPolicy:
    provider: str
    allow_unlinked_bids: bool
    unlinked_grace_hours: float
    payment_link: str
    fee_percent: float


@dataclass(frozen=True)
class EnforcementPolicy:
    require_payment_before_bid: bool
    strikethrough_unlinked: bool


@dataclass(frozen=True)
class TrackingPolicy:
    append_utm: bool
    utm_params: str


@dataclass(frozen=True)
class ContentPolicy:
    prohibited: tuple[str, ...]
    required: tuple[str, ...]


@dataclass(frozen=True)
class StorageConfig:
    backend: str
    options: Mapping[str, Any]


@dataclass(frozen=True)
class RetryConfig:
    attempts: int
    delay_seconds: float


@dataclass(frozen=True)
class GitHubConfig:
    owner: str
    repo: str
    token: str
    webhook_secret: str
    api_url: str = "https://api.github.com"

    @property
    def is_configured(self) -> bool:
        return bool(self.owner and self.repo)


@dataclass(frozen=True)
class StripeConfig:
    secret_key: str

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key)


@dataclass(frozen=True)
class AuctionConfig:
    bidding: BiddingPolicy
    banner: BannerPolicy
    approval: ApprovalPolicy
    payment: PaymentPolicy
    enforcement: EnforcementPolicy
    tracking: TrackingPolicy
    content: ContentPolicy
    storage: StorageConfig
    retry: RetryConfig
    github: GitHubConfig
    stripe: StripeConfig

    @property
    def payment_required(self) -> bool:
        return (
            self.enforcement.require_payment_before_bid
            and not self.payment.allow_unlinked_bids
        )

    @property
    def approval_owner(self) -> str:
        return self.approval.owner or self.github.owner


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)
    return yaml.safe_load(path.read_text(encoding="utf-8")) or {}


def _deep_merge(defaults: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    merged = deepcopy(dict(defaults))
    for key, value in overrides.items():
        base = merged.get(key)
        if isinstance(value, Mapping) and isinstance(base, Mapping):
            merged[key] = _deep_merge(base, value)
        elif value is not None:
            merged[key] = deepcopy(value)
    return merged


def _number(section: str, key: str, value: Any, *, minimum: float = 0, strict: bool = False) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigValidationError(f"{section}.{key} must be a number")
    if strict and value <= minimum:
        raise ConfigValidationError(f"{section}.{key} must be a positive number")
    if value < minimum:
        raise ConfigValidationError(f"{section}.{key} must be a non-negative number")
    return value


def _choice(section: str, key: str, value: Any, choices: tuple[str, ...]) -> str:
    if value not in choices:
        raise ConfigValidationError(f"{section}.{key} must be one of: {', '.join(choices)}")
    return value


def _flag(section: str, key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigValidationError(f"{section}.{key} must be a boolean")
    return value


def _github_from_env(env: Mapping[str, str]) -> GitHubConfig:
    owner = env.get("GITHUB_REPOSITORY_OWNER", "")
    full_repo = env.get("GITHUB_REPOSITORY", "")
    repo = full_repo.split("/", 1)[1] if "/" in full_repo else full_repo
    if not owner and "/" in full_repo:
        owner = full_repo.split("/", 1)[0]
    return GitHubConfig(
        owner=owner,
        repo=repo,
        token=env.get("GITHUB_TOKEN", ""),
        webhook_secret=env.get("GITHUB_WEBHOOK_SECRET", ""),
        api_url=env.get("GITHUB_API_URL", "https://api.github.com"),
    )


def build_auction_config(
    data: Mapping[str, Any] | None = None,
    env: Mapping[str, str] | None = None,
) -> AuctionConfig:
    """Merge raw settings over the defaults and validate them."""
    if data is not None and not isinstance(data, Mapping):
        raise ConfigValidationError("config must be a mapping")
    env = os.environ if env is None else env
    merged = _deep_merge(DEFAULTS, data or {})

    bidding = merged["bidding"]
    banner = merged["banner"]
    approval = merged["approval"]
    payment = merged["payment"]
    enforcement = merged["enforcement"]
    tracking = merged["tracking"]
    content = merged["content_guidelines"]
    storage = merged["storage"]
    retry = merged["retry"]

    if not isinstance(tracking.get("utm_params"), str):
        raise ConfigValidationError("tracking.utm_params must be a string")
    fee_percent = _number("payment", "fee_percent", payment.get("fee_percent"))
    if fee_percent > 100:
        raise ConfigValidationError("payment.fee_percent must be a number between 0 and 100")
    attempts = int(_number("retry", "attempts", retry.get("attempts"), strict=True))

    return AuctionConfig(
        bidding=BiddingPolicy(
            schedule=_choice("bidding", "schedule", bidding.get("schedule"), SCHEDULES),
            duration_days=int(_number("bidding", "duration", bidding.get("duration"), strict=True)),
            minimum_bid=_number("bidding", "minimum_bid", bidding.get("minimum_bid")),
            increment=_number("bidding", "increment", bidding.get("increment")),
        ),
        banner=BannerPolicy(
            width=int(_number("banner", "width", banner.get("width"), strict=True)),
            height=int(_number("banner", "height", banner.get("height"), strict=True)),
            formats=tuple(banner.get("formats") or ()),
            max_size_kb=int(_number("banner", "max_size", banner.get("max_size"), strict=True)),
        ),
        approval=ApprovalPolicy(
            mode=_choice("approval", "mode", approval.get("mode"), APPROVAL_MODES),
            allowed_reactions=tuple(approval.get("allowed_reactions") or ()),
            owner=approval.get("owner") or None,
        ),
        payment=PaymentPolicy(
            provider=_choice("payment", "provider", payment.get("provider"), PAYMENT_PROVIDERS),
            allow_unlinked_bids=_flag("payment", "allow_unlinked_bids", payment.get("allow_unlinked_bids")),
            unlinked_grace_hours=_number(
                "payment", "unlinked_grace_hours", payment.get("unlinked_grace_hours")
            ),
            payment_link=str(payment.get("payment_link") or ""),
            fee_percent=fee_percent,
        ),
        enforcement=EnforcementPolicy(
            require_payment_before_bid=_flag(
                "enforcement", "require_payment_before_bid", enforcement.get("require_payment_before_bid")
            ),
            strikethrough_unlinked=_flag(
                "enforcement", "strikethrough_unlinked", enforcement.get("strikethrough_unlinked")
            ),
        ),
        tracking=TrackingPolicy(
            append_utm=_flag("tracking", "append_utm", tracking.get("append_utm")),
            utm_params=tracking["utm_params"],
        ),
        content=ContentPolicy(
            prohibited=tuple(content.get("prohibited") or ()),
            required=tuple(content.get("required") or ()),
        ),
        storage=StorageConfig(
            backend=str(storage.get("backend", "filesystem")),
            options=dict(storage.get("options") or {}),
        ),
        retry=RetryConfig(
            attempts=attempts,
            delay_seconds=float(_number("retry", "delay_seconds", retry.get("delay_seconds"))),
        ),
        github=_github_from_env(env),
        stripe=StripeConfig(secret_key=env.get("STRIPE_SECRET_KEY", "")),
    )


@lru_cache(maxsize=1)
def get_auction_config() -> AuctionConfig:
    path = Path(os.getenv("BANNER_AUCTION_CONFIG", _DEFAULT_AUCTION_CONFIG))
    return build_auction_config(_load_yaml(path))
