# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""FastAPI application factory and HTTP schemas for the subscription service.

The HTTP surface exposed here is the part that talks to the mail layer:

- ``GET /health``: liveness probe, never authenticated
- ``GET /status``: mailer state, queue depth and in-flight work
- ``GET /metrics``: Prometheus exposition
- ``POST /mail``: enqueue one message (fire-and-forget)

When an API token is configured every endpoint except ``/health`` requires
it in the ``X-API-Token`` header.

Example:
    Serving the routes standalone::

        app = create_app(mailer, api_token="secret-token")
        uvicorn.run(app, host="127.0.0.1", port=8080)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from fastapi.security import APIKeyHeader
from pydantic import BaseModel

from .mailer import MailerClosedError
from .models import MessagePayload

if TYPE_CHECKING:
    from .mailer import Mailer

logger = logging.getLogger(__name__)

API_TOKEN_HEADER_NAME = "X-API-Token"
api_key_scheme = APIKeyHeader(name=API_TOKEN_HEADER_NAME, auto_error=False)


async def require_token(request: Request, api_token: str | None = Depends(api_key_scheme)) -> None:
    """Reject the request with ``401`` unless ``X-API-Token`` matches the configured token.

    Without a configured token every request passes.
    """
    expected = getattr(request.app.state, "api_token", None)
    if expected is None:
        return
    if not api_token or api_token != expected:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid or missing API token")


auth_dependency = Depends(require_token)


class CommandStatus(BaseModel):
    """Envelope shared by the JSON responses."""
    ok: bool
    error: Optional[str] = None


class StatusResponse(CommandStatus):
    mailer: str
    queued: int
    inflight: int


class EnqueueResponse(CommandStatus):
    """Response returned once a message sits in the outbound queue."""
    queued: int = 0


def create_app(mailer: Mailer, api_token: str | None = None, **fastapi_kwargs) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    mailer:
        The :class:`~simple_subscription.mailer.Mailer` receiving messages.
    api_token:
        Optional secret used to protect every endpoint but ``/health``.
    fastapi_kwargs:
        Extra keyword arguments for :class:`fastapi.FastAPI` (e.g. ``lifespan``).

    Returns
    -------
    FastAPI
        A configured application ready to be served by Uvicorn.
    """
    api = FastAPI(title="Simple Subscription", **fastapi_kwargs)
    api.state.api_token = api_token
    api.state.mailer = mailer

    @api.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Log the rejected payload before answering 422."""
        logger.error("Validation error on %s %s: %s", request.method, request.url.path, exc.errors())
        return JSONResponse(status_code=422, content={"detail": exc.errors()})

    @api.get("/health")
    async def health():
        """Liveness probe, always unauthenticated."""
        return {"status": "ok"}

    @api.get("/status", response_model=StatusResponse, response_model_exclude_none=True, dependencies=[auth_dependency])
    async def status_():
        return StatusResponse(
            ok=True,
            mailer=mailer.state.value,
            queued=mailer.mailer_queue.qsize(),
            inflight=mailer.wait.count,
        )

    @api.get("/metrics", dependencies=[auth_dependency])
    async def metrics():
        """Expose Prometheus metrics."""
        return Response(content=mailer.metrics.generate_latest(), media_type="text/plain; version=0.0.4")

    @api.post(
        "/mail",
        response_model=EnqueueResponse,
        response_model_exclude_none=True,
        status_code=status.HTTP_202_ACCEPTED,
        dependencies=[auth_dependency],
    )
    async def send_mail(payload: MessagePayload):
        """Queue one message; delivery happens in the background."""
        try:
            await mailer.enqueue(payload.to_message())
        except MailerClosedError:
            raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Mailer is shutting down")
        return EnqueueResponse(ok=True, queued=1)

    return api
