from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, Request, status
from jsonschema import ValidationError

from .admin import bidders as admin_bidders
from .admin import config as admin_config
from .admin import health as admin_health
from .admin import stats as admin_stats
from .auction.admission import BidAdmissionService
from .auction.approval import ApprovalService
from .auction.closer import PeriodCloser
from .auction.grace import GraceSweeper
from .auction.opener import PeriodOpener
from .auction.payment_setup import PaymentSetupService
from .auction.results import FailureReason, OperationResult
from .bidders.registry import BidderStore
from .config import AuctionConfig, get_auction_config
from .events.anti_replay import DeliveryReplayError, DeliveryReplayGuard
from .events.handler import WebhookService
from .github.client import GitHubAPIError, GitHubClient
from .payments.stripe import StripeClient
from .periods.store import PeriodStore
from .storage import build_storage
from .storage.codec import CorruptedStateError
from .transport.signatures import SignatureError
from .validation.validator import get_schema_registry

logger = logging.getLogger(__name__)

FAILURE_STATUS_CODES = {
    FailureReason.INVALID_BID: status.HTTP_422_UNPROCESSABLE_ENTITY,
    FailureReason.BID_TOO_LOW: status.HTTP_422_UNPROCESSABLE_ENTITY,
    FailureReason.NO_OPEN_PERIOD: status.HTTP_409_CONFLICT,
    FailureReason.PERIOD_NOT_OPEN: status.HTTP_409_CONFLICT,
    FailureReason.PERIOD_ALREADY_OPEN: status.HTTP_409_CONFLICT,
    FailureReason.ARCHIVE_CONFLICT: status.HTTP_409_CONFLICT,
    FailureReason.COMMENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    FailureReason.BID_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    FailureReason.CORRUPTED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    FailureReason.PAYMENT_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    auction_config = get_auction_config()
    schema_registry = get_schema_registry()
    storage = build_storage(auction_config)
    period_store = PeriodStore(storage, schema_registry)
    bidder_store = BidderStore(storage, schema_registry)
    github = GitHubClient(auction_config.github)
    stripe = StripeClient(auction_config.stripe)
    admission = BidAdmissionService(auction_config, period_store, bidder_store, github)

    app.state.auction_config = auction_config
    app.state.schema_registry = schema_registry
    app.state.storage = storage
    app.state.period_store = period_store
    app.state.bidder_store = bidder_store
    app.state.admission = admission
    app.state.approval = ApprovalService(auction_config, period_store, github)
    app.state.grace_sweeper = GraceSweeper(auction_config, period_store, bidder_store, github, stripe)
    app.state.closer = PeriodCloser(auction_config, period_store, bidder_store, github, stripe)
    app.state.opener = PeriodOpener(auction_config, period_store, github)
    app.state.payment_setup = PaymentSetupService(auction_config, bidder_store, github, stripe)
    app.state.webhook_service = WebhookService(
        auction_config.github,
        schema_registry,
        period_store,
        admission,
        DeliveryReplayGuard(),
    )
    app.state.start_time = datetime.now(timezone.utc)

    yield

    await github.close()


app = FastAPI(
    title="Banner Auction Server",
    version="1.0.0",
    docs_url="/docs",
    lifespan=lifespan,
)

app.include_router(admin_health.router)
app.include_router(admin_stats.router)
app.include_router(admin_config.router)
app.include_router(admin_bidders.router)


# Dependency helpers ---------------------------------------------------------


def get_settings(request: Request) -> AuctionConfig:
    return request.app.state.auction_config


def get_period_store(request: Request) -> PeriodStore:
    return request.app.state.period_store


def get_admission_service(request: Request) -> BidAdmissionService:
    return request.app.state.admission


def get_approval_service(request: Request) -> ApprovalService:
    return request.app.state.approval


def get_grace_sweeper(request: Request) -> GraceSweeper:
    return request.app.state.grace_sweeper


def get_period_closer(request: Request) -> PeriodCloser:
    return request.app.state.closer


def get_period_opener(request: Request) -> PeriodOpener:
    return request.app.state.opener


def get_payment_setup_service(request: Request) -> PaymentSetupService:
    return request.app.state.payment_setup


def get_webhook_service(request: Request) -> WebhookService:
    return request.app.state.webhook_service


# Routes ---------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root(settings: AuctionConfig = Depends(get_settings)) -> dict[str, Any]:
    return {
        "service": "banner-auction-server",
        "version": app.version,
        "repository": f"{settings.github.owner}/{settings.github.repo}",
        "bidding": {
            "schedule": settings.bidding.schedule,
            "duration_days": settings.bidding.duration_days,
        },
        "approval_mode": settings.approval.mode,
        "storage_backend": settings.storage.backend,
    }


@app.get("/ping", tags=["meta"])
async def ping() -> dict[str, Any]:
    return {"status": "ok", "version": app.version}


@app.get("/periods/current", tags=["periods"])
async def current_period(periods: PeriodStore = Depends(get_period_store)) -> dict[str, Any]:
    try:
        snapshot = await periods.load()
    except CorruptedStateError as exc:
        raise HTTPException(status_code=500, detail=f"period data is corrupted: {exc.reason}") from exc
    return {
        "state": snapshot.state.value,
        "period": snapshot.period.to_dict() if snapshot.period else None,
    }


@app.post("/periods", tags=["periods"])
async def open_period(opener: PeriodOpener = Depends(get_period_opener)) -> dict[str, Any]:
    return render_result(await _call_github(opener.open()))


@app.post("/periods/current/bids", tags=["bids"])
async def admit_bid(
    payload: dict[str, Any] = Body(...),
    admission: BidAdmissionService = Depends(get_admission_service),
) -> dict[str, Any]:
    comment_id = require_comment_id(payload)
    result = await _call_github(admission.admit(comment_id, payload.get("period_id")))
    return render_result(result)


@app.post("/periods/current/approvals", tags=["bids"])
async def approve_bid(
    payload: dict[str, Any] = Body(...),
    approval: ApprovalService = Depends(get_approval_service),
) -> dict[str, Any]:
    comment_id = require_comment_id(payload)
    result = await _call_github(approval.approve(comment_id, payload.get("period_id")))
    return render_result(result)


@app.post("/tasks/grace-sweep", tags=["tasks"])
async def grace_sweep(sweeper: GraceSweeper = Depends(get_grace_sweeper)) -> dict[str, Any]:
    return render_result(await sweeper.sweep())


@app.post("/tasks/close", tags=["tasks"])
async def close_period(closer: PeriodCloser = Depends(get_period_closer)) -> dict[str, Any]:
    return render_result(await closer.close())


@app.post("/bidders/{username}/payment-setup", tags=["bidders"])
async def payment_setup(
    username: str,
    payload: dict[str, Any] | None = Body(default=None),
    service: PaymentSetupService = Depends(get_payment_setup_service),
) -> dict[str, Any]:
    issue_number = (payload or {}).get("issue_number", 0)
    if isinstance(issue_number, bool) or not isinstance(issue_number, int):
        raise HTTPException(status_code=422, detail="issue_number must be an integer")
    return render_result(await service.setup_payment(username, issue_number))


@app.post("/bidders/{username}/payment-link", tags=["bidders"])
async def payment_link(
    username: str,
    payload: dict[str, Any] = Body(...),
    service: PaymentSetupService = Depends(get_payment_setup_service),
) -> dict[str, Any]:
    customer_id = payload.get("customer_id")
    payment_method_id = payload.get("payment_method_id")
    if not customer_id or not payment_method_id:
        raise HTTPException(
            status_code=422, detail="customer_id and payment_method_id are required"
        )
    return render_result(await service.link_payment(username, customer_id, payment_method_id))


@app.post("/webhooks/github", tags=["webhooks"])
async def github_webhook(
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
) -> dict[str, Any]:
    body = await request.body()
    try:
        return await _call_github(
            service.handle(
                event_name=request.headers.get("X-GitHub-Event", ""),
                delivery_id=request.headers.get("X-GitHub-Delivery", ""),
                signature=request.headers.get("X-Hub-Signature-256", ""),
                body=body,
            )
        )
    except SignatureError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    except DeliveryReplayError:
        return {"status": "duplicate"}
    except CorruptedStateError as exc:
        raise HTTPException(status_code=500, detail=f"period data is corrupted: {exc.reason}") from exc
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc.message)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def require_comment_id(payload: dict[str, Any]) -> int:
    comment_id = payload.get("comment_id")
    if isinstance(comment_id, bool) or not isinstance(comment_id, int):
        raise HTTPException(status_code=422, detail="comment_id must be an integer")
    return comment_id


async def _call_github(operation):
    try:
        return await operation
    except GitHubAPIError as exc:
        logger.error("GitHub request failed after retries: %s", exc)
        raise HTTPException(status_code=502, detail=f"GitHub API error: {exc.message}") from exc


def render_result(result: OperationResult) -> dict[str, Any]:
    if result.success:
        return result.to_dict()
    raise HTTPException(
        status_code=FAILURE_STATUS_CODES.get(result.reason, status.HTTP_400_BAD_REQUEST),
        detail=result.to_dict(),
    )
