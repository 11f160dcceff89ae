"""
HTTP gateway for Notebox.

Exposes the handle/query message surface over JSON:

    POST /v1/handle   body: HandleMsg   headers: X-Sender, [X-Block-Height, X-Block-Time]
    POST /v1/query    body: QueryMsg
    GET  /v1/health

Invariants:
    - Every handle request is exactly one service invocation
    - The sender comes from X-Sender; block time defaults to the local clock
    - NoteboxError codes map to fixed HTTP statuses

How to change safely:
    - Keep request/response bodies in sync with api.messages
    - Never echo viewing keys in error responses
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .._version import __version__
from ..errors import NoteboxError
from ..service import NotificationService
from ..state import ExecutionContext
from . import messages
from .settings import Settings

logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    "VALIDATION_ERROR": 400,
    "UNAUTHORIZED": 401,
    "NOT_A_COLLECTION": 404,
    "OUT_OF_RANGE": 404,
    "ALREADY_INITIALIZED": 409,
    "ALREADY_EXISTS": 409,
    "NOT_FOUND": 503,
}


def create_app(service: NotificationService, settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        service: Notification service to serve
        settings: Gateway settings (loaded from env if not provided)

    Returns:
        FastAPI application
    """
    settings = settings or Settings()

    app = FastAPI(
        title="Notebox",
        description="Per-recipient notification ledger with viewing-key reads.",
        version=__version__,
    )
    app.state.service = service
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(NoteboxError)
    async def notebox_error_handler(request: Request, exc: NoteboxError) -> JSONResponse:
        status = STATUS_BY_CODE.get(exc.code, 500)
        if status >= 500:
            logger.error(f"Request failed: {exc.message}", extra={"error_code": exc.code})
        return JSONResponse(
            {"error": exc.message, "error_code": exc.code},
            status_code=status,
        )

    @app.post("/v1/handle", response_model=messages.HandleAnswer, response_model_exclude_none=True)
    async def handle(
        msg: messages.HandleMsg,
        x_sender: str = Header(..., description="Identity sending the request"),
        x_block_height: int = Header(0),
        x_block_time: int | None = Header(None),
    ) -> messages.HandleAnswer:
        context = ExecutionContext(
            sender=x_sender,
            block_height=x_block_height,
            block_time=x_block_time if x_block_time is not None else int(time.time()),
            contract_address=service.state.contract,
        )
        return await messages.handle(service, context, msg)

    @app.post("/v1/query", response_model=messages.QueryAnswer, response_model_exclude_none=True)
    async def query(msg: messages.QueryMsg) -> messages.QueryAnswer:
        return await messages.query(service, msg)

    @app.get("/v1/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy", "service": "notebox", "version": __version__}

    return app
