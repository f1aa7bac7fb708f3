"""Linking bidders to a Stripe customer and payment method."""

from __future__ import annotations

import logging

from .. import messages
from ..bidders.registry import BidderStore
from ..config import AuctionConfig
from ..github.client import GitHubClient
from ..payments.stripe import StripeAPIError, StripeClient
from .notify import Notifier
from .results import FailureReason, OperationResult

logger = logging.getLogger(__name__)


class PaymentSetupService:
    def __init__(
        self,
        config: AuctionConfig,
        bidders: BidderStore,
        github: GitHubClient,
        stripe: StripeClient,
    ) -> None:
        self._config = config
        self._bidders = bidders
        self._stripe = stripe
        self._notifier = Notifier(github)

    def _return_urls(self, issue_number: int) -> tuple[str, str]:
        github = self._config.github
        base = f"https://github.com/{github.owner}/{github.repo}"
        if issue_number > 0:
            base = f"{base}/issues/{issue_number}"
        return f"{base}?payment=success", f"{base}?payment=cancelled"

    async def setup_payment(self, username: str, issue_number: int = 0) -> OperationResult:
        if not self._stripe.is_configured:
            return OperationResult.failed(
                FailureReason.PAYMENT_UNAVAILABLE, "Stripe not configured — cannot set up payment"
            )

        registry = await self._bidders.load()
        if registry.is_payment_linked(username):
            return OperationResult.ok(f"Payment already linked for @{username}")

        try:
            existing = await self._stripe.search_customers_by_metadata("github_username", username)
            if existing:
                customer = existing[0]
                logger.info("payment_setup: reusing Stripe customer %s for %s", customer.id, username)
            else:
                customer = await self._stripe.create_customer(github_username=username)
                logger.info("payment_setup: created Stripe customer %s for %s", customer.id, username)
            success_url, cancel_url = self._return_urls(issue_number)
            session = await self._stripe.create_checkout_session(
                customer_id=customer.id,
                success_url=success_url,
                cancel_url=cancel_url,
                github_username=username,
            )
        except StripeAPIError as exc:
            logger.warning("payment_setup failed for %s", username, exc_info=True)
            return OperationResult.failed(
                FailureReason.PAYMENT_UNAVAILABLE, f"Failed to create payment setup: {exc.message}"
            )

        record = registry.register(username)
        record.stripe_customer_id = customer.id
        await self._bidders.save(registry)

        if issue_number > 0:
            await self._notifier.comment(
                "payment_setup:comment",
                issue_number,
                messages.payment_setup_comment(username, session.url),
            )
        return OperationResult.ok(
            f"Payment setup link generated for @{username}: {session.url}",
            checkout_url=session.url,
            customer_id=customer.id,
        )

    async def link_payment(
        self, username: str, customer_id: str, payment_method_id: str
    ) -> OperationResult:
        registry = await self._bidders.load()
        record = registry.mark_payment_linked(username, customer_id, payment_method_id)
        await self._bidders.save(registry)
        logger.info("payment_setup: %s linked to %s", username, customer_id)
        return OperationResult.ok(f"Payment linked for @{username}", bidder=record.to_dict())
