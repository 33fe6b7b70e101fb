"""HTTP control plane for the flywheel runtime."""

from __future__ import annotations

import hmac
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Header, HTTPException, Query, Request
from pydantic import BaseModel

from flywheel import __version__
from flywheel.core.config import load_settings
from flywheel.core.errors import CycleInProgressError
from flywheel.runtime import FlywheelRuntime

logger = logging.getLogger(__name__)


class RunEpochIn(BaseModel):
    """Manual trigger input model."""

    approved: bool = False


def _runtime(request: Request) -> FlywheelRuntime:
    runtime: FlywheelRuntime = request.app.state.runtime
    return runtime


def create_app(runtime: FlywheelRuntime | None = None) -> FastAPI:
    """Build the API around an existing runtime, or one built from the environment."""
    if runtime is None:
        runtime = FlywheelRuntime(load_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if runtime.settings.enable_scheduler:
            runtime.start_scheduler()
        try:
            yield
        finally:
            await runtime.stop_scheduler()

    app = FastAPI(title="Flywheel API", version=__version__, lifespan=lifespan)
    app.state.runtime = runtime

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/status")
    def status(request: Request) -> dict[str, object]:
        return _runtime(request).status()

    @app.get("/epochs")
    def epochs(request: Request, limit: int = Query(default=20, ge=1, le=500)) -> dict[str, object]:
        return {"epochs": _runtime(request).store.recent_epochs(limit)}

    @app.get("/reports/{report_id}")
    def report(request: Request, report_id: str) -> dict[str, object]:
        payload = _runtime(request).store.get_report(report_id)
        if payload is None:
            raise HTTPException(status_code=404, detail="Report not found")
        return payload

    @app.post("/epochs/run")
    async def run_epoch(
        request: Request,
        body: RunEpochIn | None = None,
        x_webhook_secret: str | None = Header(default=None, alias="X-Webhook-Secret"),
    ) -> dict[str, object]:
        """Manually trigger one cycle; refused while another cycle is running."""
        current = _runtime(request)
        settings = current.settings
        if not settings.enable_webhook:
            raise HTTPException(status_code=404, detail="Webhook trigger is disabled")
        if x_webhook_secret is None or not hmac.compare_digest(
            x_webhook_secret.encode("utf-8"), settings.webhook_secret.encode("utf-8")
        ):
            logger.warning("webhook_rejected reason=invalid_secret")
            raise HTTPException(status_code=401, detail="Invalid webhook secret")

        approved = body.approved if body is not None else False
        try:
            result = await current.trigger_epoch(manually_approved=approved)
        except CycleInProgressError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return result.to_dict()

    return app
