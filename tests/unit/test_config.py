"""Unit tests for loading and validating the auction policy."""

from __future__ import annotations

import pytest

from banner_auction.config import (
    DEFAULTS,
    ConfigValidationError,
    build_auction_config,
    get_auction_config,
)


class TestBuildAuctionConfig:
    def test_defaults(self):
        config = build_auction_config({}, env={})
        assert config.bidding.minimum_bid == 50
        assert config.bidding.duration_days == 7
        assert config.approval.mode == "emoji"
        assert config.payment_required is True
        assert config.github.is_configured is False
        assert config.stripe.is_configured is False

    def test_partial_sections_merge_over_defaults(self):
        config = build_auction_config({"bidding": {"minimum_bid": 100}}, env={})
        assert config.bidding.minimum_bid == 100
        assert config.bidding.increment == 5
        assert DEFAULTS["bidding"]["minimum_bid"] == 50

    def test_lenient_mode_disables_payment_requirement(self):
        config = build_auction_config({"payment": {"allow_unlinked_bids": True}}, env={})
        assert config.payment_required is False

    def test_repository_identity_from_env(self):
        config = build_auction_config(
            {},
            env={"GITHUB_REPOSITORY": "acme/widgets", "STRIPE_SECRET_KEY": "sk_test"},
        )
        assert (config.github.owner, config.github.repo) == ("acme", "widgets")
        assert config.approval_owner == "acme"
        assert config.stripe.is_configured

    def test_explicit_owner_wins(self):
        config = build_auction_config(
            {"approval": {"owner": "maintainer"}}, env={"GITHUB_REPOSITORY": "acme/widgets"}
        )
        assert config.approval_owner == "maintainer"

    @pytest.mark.parametrize(
        "data",
        [
            {"bidding": {"schedule": "daily"}},
            {"bidding": {"minimum_bid": "fifty"}},
            {"bidding": {"duration": 0}},
            {"approval": {"mode": "vote"}},
            {"payment": {"fee_percent": 150}},
            {"enforcement": {"strikethrough_unlinked": "yes"}},
            {"retry": {"attempts": 0}},
        ],
    )
    def test_invalid_values_are_rejected(self, data):
        with pytest.raises(ConfigValidationError):
            build_auction_config(data, env={})

    def test_non_mapping_is_rejected(self):
        with pytest.raises(ConfigValidationError):
            build_auction_config(["not", "a", "mapping"], env={})


class TestGetAuctionConfig:
    def test_reads_yaml_from_env_path(self, tmp_path, monkeypatch):
        path = tmp_path / "auction.yaml"
        path.write_text("bidding:\n  minimum_bid: 75\napproval:\n  mode: auto\n", encoding="utf-8")
        monkeypatch.setenv("BANNER_AUCTION_CONFIG", str(path))
        get_auction_config.cache_clear()
        try:
            config = get_auction_config()
        finally:
            get_auction_config.cache_clear()
        assert config.bidding.minimum_bid == 75
        assert config.approval.mode == "auto"

    def test_bundled_file_matches_defaults(self, monkeypatch):
        monkeypatch.delenv("BANNER_AUCTION_CONFIG", raising=False)
        get_auction_config.cache_clear()
        try:
            config = get_auction_config()
        finally:
            get_auction_config.cache_clear()
        assert config.bidding.minimum_bid == DEFAULTS["bidding"]["minimum_bid"]
        assert config.payment.unlinked_grace_hours == 24
