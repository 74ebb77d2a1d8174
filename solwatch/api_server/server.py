"""
FastAPI command surface over the watch service.

Exposes track/untrack (single and batch), the tracked list, a manual
analysis re-run, and a health snapshot. When API_KEY is configured every
route except /health requires a matching X-API-Key header.
"""

from __future__ import annotations

import hmac
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from solwatch import __version__
from solwatch.agent_worker.worker import WatchService
from solwatch.config.settings import Settings, load_settings
from solwatch.core.exceptions import InvalidAddressError
from solwatch.solwatch_logging import get_logger, short

logger = get_logger(__name__)


# -----------------------------------------------------------------------------
# Request / response models
# -----------------------------------------------------------------------------


class AddressRequest(BaseModel):
    address: str = Field(..., min_length=1, max_length=64, description="Solana address (base58)")


class AddressBatchRequest(BaseModel):
    addresses: list[str] = Field(..., min_length=1, description="Solana addresses (base58)")


class TrackResponse(BaseModel):
    address: str
    added: bool = Field(..., description="True if newly tracked, False if already tracked")


class UntrackResponse(BaseModel):
    address: str
    removed: bool


class BatchResponse(BaseModel):
    ok: int
    failed: int


class TrackedResponse(BaseModel):
    wallets: list[str]


class AnalyzeRequest(BaseModel):
    signature: str = Field(..., min_length=1, max_length=128)
    address: str = Field(..., min_length=1, max_length=64)


class AnalyzeResponse(BaseModel):
    summary: str
    filtered: bool


class HealthResponse(BaseModel):
    generated_at: str
    tracked_in_memory: int
    open_subscriptions: int
    dropped_subscriptions: list[str]
    tracked_in_store: int


# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------


def get_service(request: Request) -> WatchService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="service not started")
    return service


def require_api_key(request: Request, x_api_key: str | None = Header(default=None)) -> None:
    expected = getattr(request.app.state, "api_key", "") or ""
    if not expected:
        return
    if not x_api_key or not hmac.compare_digest(x_api_key, expected):
        raise HTTPException(status_code=401, detail="invalid or missing API key")


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    service: WatchService | None = None,
    *,
    api_key: str | None = None,
) -> FastAPI:
    """
    Build the app. With no service injected, the lifespan loads settings and
    owns a WatchService (start on startup, shutdown on exit).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = service is None
        if owned:
            cfg = settings or load_settings()
            app.state.service = WatchService(cfg)
            if api_key is None:
                app.state.api_key = cfg.api_key
        svc: WatchService = app.state.service
        loaded = await svc.start()
        logger.info("api_started", loaded=loaded, auth="on" if app.state.api_key else "off")
        try:
            yield
        finally:
            await svc.shutdown()
            logger.info("api_stopped")

    app = FastAPI(
        title="solwatch",
        description="Real-time Solana wallet activity notifier.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.api_key = api_key if api_key is not None else (settings.api_key if settings else "")

    protected = [Depends(require_api_key)]

    @app.get("/health", response_model=HealthResponse)
    def health(svc: WatchService = Depends(get_service)) -> dict[str, Any]:
        return svc.health().to_dict()

    @app.get("/tracked", response_model=TrackedResponse, dependencies=protected)
    def tracked(svc: WatchService = Depends(get_service)) -> TrackedResponse:
        return TrackedResponse(wallets=svc.list_tracked())

    @app.post("/track", response_model=TrackResponse, dependencies=protected)
    async def track(body: AddressRequest, svc: WatchService = Depends(get_service)) -> JSONResponse:
        """201 when newly tracked, 200 when already tracked."""
        try:
            added = await svc.track(body.address)
        except InvalidAddressError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        address = body.address.strip()
        logger.info("api_track", address=short(address), added=added)
        return JSONResponse(
            status_code=201 if added else 200,
            content=TrackResponse(address=address, added=added).model_dump(),
        )

    @app.post("/untrack", response_model=UntrackResponse, dependencies=protected)
    async def untrack(body: AddressRequest, svc: WatchService = Depends(get_service)) -> UntrackResponse:
        removed = await svc.untrack(body.address)
        address = body.address.strip()
        logger.info("api_untrack", address=short(address), removed=removed)
        return UntrackResponse(address=address, removed=removed)

    @app.post("/track-many", response_model=BatchResponse, dependencies=protected)
    async def track_many(body: AddressBatchRequest, svc: WatchService = Depends(get_service)) -> BatchResponse:
        ok, failed = await svc.track_many(body.addresses)
        return BatchResponse(ok=ok, failed=failed)

    @app.post("/untrack-many", response_model=BatchResponse, dependencies=protected)
    async def untrack_many(body: AddressBatchRequest, svc: WatchService = Depends(get_service)) -> BatchResponse:
        ok, failed = await svc.untrack_many(body.addresses)
        return BatchResponse(ok=ok, failed=failed)

    @app.post("/test", response_model=AnalyzeResponse, dependencies=protected)
    async def test_signature(body: AnalyzeRequest, svc: WatchService = Depends(get_service)) -> AnalyzeResponse:
        """Re-run analysis for one signature; the only retry path for a failed fetch."""
        outcome = await svc.test_signature(body.signature, body.address)
        if outcome.error is not None:
            raise HTTPException(status_code=502, detail=outcome.error)
        return AnalyzeResponse(summary=outcome.summary, filtered=outcome.filtered)

    return app


app = create_app()
