"""Stripe client for off-session charges and customer setup, on the stripe SDK."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable

import stripe

from ..config import StripeConfig


class StripeAPIError(Exception):
    def __init__(self, status: int, message: str, *, error_type: str | None = None) -> None:
        super().__init__(f"Stripe API error {status}: {message}")
        self.status = status
        self.message = message
        self.error_type = error_type


class PaymentDeclinedError(StripeAPIError):
    """A structured card decline; the charge did not go through."""

    def __init__(
        self,
        status: int,
        message: str,
        *,
        code: str | None = None,
        decline_code: str | None = None,
    ) -> None:
        super().__init__(status, message, error_type="card_error")
        self.code = code
        self.decline_code = decline_code


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    status: str
    amount: int


@dataclass(frozen=True)
class Customer:
    id: str
    email: str | None
    metadata: dict[str, str]


@dataclass(frozen=True)
class PaymentMethod:
    id: str
    type: str


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str


def _error_details(exc: stripe.StripeError) -> dict[str, Any]:
    return (exc.json_body or {}).get("error") or {}


class StripeClient:
    def __init__(self, config: StripeConfig) -> None:
        self._config = config

    @property
    def is_configured(self) -> bool:
        return self._config.is_configured

    async def _call(self, operation: Callable[..., Any], **params: Any) -> Any:
        """Run a blocking SDK call off the event loop and translate its errors."""
        try:
            return await asyncio.to_thread(operation, api_key=self._config.secret_key, **params)
        except stripe.CardError as exc:
            raise PaymentDeclinedError(
                exc.http_status or 402,
                exc.user_message or str(exc),
                code=exc.code,
                decline_code=_error_details(exc).get("decline_code"),
            ) from exc
        except stripe.StripeError as exc:
            raise StripeAPIError(
                exc.http_status or 0,
                exc.user_message or str(exc),
                error_type=_error_details(exc).get("type"),
            ) from exc

    async def charge_customer(
        self,
        *,
        customer_id: str,
        payment_method_id: str,
        amount_cents: int,
        description: str,
        idempotency_key: str,
    ) -> PaymentIntent:
        intent = await self._call(
            stripe.PaymentIntent.create,
            customer=customer_id,
            payment_method=payment_method_id,
            amount=amount_cents,
            currency="usd",
            confirm=True,
            off_session=True,
            description=description,
            idempotency_key=idempotency_key,
        )
        return PaymentIntent(
            id=intent.id,
            status=getattr(intent, "status", ""),
            amount=int(getattr(intent, "amount", amount_cents)),
        )

    async def search_customers_by_metadata(self, key: str, value: str) -> list[Customer]:
        result = await self._call(stripe.Customer.search, query=f"metadata['{key}']:'{value}'")
        return [_customer(item) for item in result.data]

    async def list_payment_methods(self, customer_id: str, method_type: str = "card") -> list[PaymentMethod]:
        result = await self._call(stripe.PaymentMethod.list, customer=customer_id, type=method_type)
        return [
            PaymentMethod(id=item.id, type=getattr(item, "type", method_type))
            for item in result.data
        ]

    async def create_customer(self, *, github_username: str, email: str | None = None) -> Customer:
        params: dict[str, Any] = {"metadata": {"github_username": github_username}}
        if email:
            params["email"] = email
        return _customer(await self._call(stripe.Customer.create, **params))

    async def create_checkout_session(
        self,
        *,
        customer_id: str,
        success_url: str,
        cancel_url: str,
        github_username: str,
    ) -> CheckoutSession:
        session = await self._call(
            stripe.checkout.Session.create,
            mode="setup",
            customer=customer_id,
            currency="usd",
            payment_method_types=["card"],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata={"github_username": github_username},
        )
        return CheckoutSession(id=session.id, url=getattr(session, "url", None) or "")


def _customer(item: Any) -> Customer:
    return Customer(
        id=item.id,
        email=getattr(item, "email", None),
        metadata=dict(getattr(item, "metadata", None) or {}),
    )
