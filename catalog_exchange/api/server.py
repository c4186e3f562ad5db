# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Catalog Exchange API Server.

FastAPI transport for the exchange protocol. Maps HTTP requests into
RequestContext objects, hands them to the ProtocolDispatcher and returns
its plain-text reply with HTTP 200, success or failure alike.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel
from slowapi.errors import RateLimitExceeded

from catalog_exchange.api._limiter import EXCHANGE_RATE_LIMIT, HEALTH_RATE_LIMIT, limiter
from catalog_exchange.auth.gate import AuthGate
from catalog_exchange.auth.models import Credentials
from catalog_exchange.auth.session_store import SessionStore
from catalog_exchange.auth.validator import SessionValidator
from catalog_exchange.core.config import ExchangeSettings, load_settings
from catalog_exchange.core.logger import ExchangeLogger
from catalog_exchange.exchange.dispatcher import ProtocolDispatcher, RequestContext
from catalog_exchange.storage.blobs import BlobStorage, LocalBlobStorage
from catalog_exchange.storage.documents import DocumentStore, open_document_store
from catalog_exchange.storage.router import StorageRouter, namespaces_from_settings

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

# Load .env from project root before settings are read
load_dotenv(PROJECT_ROOT / ".env")

# --------------- Logging ---------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("catalog_exchange.api")

CONFIG_PATH = Path(os.environ.get("CATALOG_EXCHANGE_CONFIG", PROJECT_ROOT / "config" / "exchange.yaml"))


def build_dispatcher(
    settings: ExchangeSettings,
    documents: DocumentStore,
    blobs: BlobStorage,
    event_log: Optional[ExchangeLogger] = None,
) -> ProtocolDispatcher:
    """Wire the protocol components around the given backends."""
    sessions = SessionStore(
        documents,
        collection=settings.sessions_storage_path,
        timeout=settings.io_timeout_seconds,
    )
    return ProtocolDispatcher(
        settings=settings,
        auth_gate=AuthGate(settings, sessions),
        validator=SessionValidator(settings, sessions),
        storage=StorageRouter(
            blobs,
            namespaces_from_settings(settings),
            timeout=settings.io_timeout_seconds,
        ),
        event_log=event_log,
    )


# --------------- Request adapter ---------------


def basic_credentials(request: Request) -> Credentials:
    """Credentials from an ``Authorization: Basic`` header; empty if absent or malformed."""
    header = request.headers.get("Authorization", "")
    scheme, _, param = header.partition(" ")
    if scheme.lower() != "basic" or not param:
        return Credentials()
    try:
        decoded = base64.b64decode(param.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        logger.warning("Malformed Basic auth header from %s", request.client.host if request.client else "unknown")
        return Credentials()
    username, sep, password = decoded.partition(":")
    if not sep:
        return Credentials()
    return Credentials(username=username, password=password)


async def request_context(request: Request, settings: ExchangeSettings) -> RequestContext:
    """Extract the exchange parameters from an HTTP request.

    The body counts as absent only when no bytes arrived and the request
    announced no body at all.
    """
    params = request.query_params
    body: Optional[bytes] = await request.body()
    if not body and "content-length" not in request.headers and "transfer-encoding" not in request.headers:
        body = None
    return RequestContext(
        exchange_type=params.get("type", ""),
        mode=params.get("mode", ""),
        filename=params.get("filename") or None,
        body=body,
        session_id=request.cookies.get(settings.session_id_cookie_name) or None,
        csrf_token=params.get("sessid") or None,
        credentials=basic_credentials(request),
    )


# --------------- Endpoints ---------------

exchange_router = APIRouter(tags=["exchange"])


class HealthResponse(BaseModel):
    """Liveness probe reply."""
    status: str
    timestamp: str


@exchange_router.get("/health", response_model=HealthResponse)
@limiter.limit(HEALTH_RATE_LIMIT)
async def health(request: Request):
    return HealthResponse(status="ok", timestamp=datetime.now(timezone.utc).isoformat())


@exchange_router.api_route("/exchange", methods=["GET", "POST"], response_class=PlainTextResponse)
@limiter.limit(EXCHANGE_RATE_LIMIT)
async def exchange(request: Request):
    """Single protocol entry point; the reply is always HTTP 200 text."""
    settings: ExchangeSettings = request.app.state.settings
    dispatcher: ProtocolDispatcher = request.app.state.dispatcher

    context = await request_context(request, settings)
    result = await dispatcher.handle(context)

    response = PlainTextResponse(result.text, status_code=200)
    if result.session is not None:
        response.set_cookie(
            key=settings.session_id_cookie_name,
            value=result.session.session_id,
            max_age=settings.session_duration_seconds,
            httponly=True,
            secure=settings.cookie_secure,
            samesite="lax",
            path="/",
        )
    return response


async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning("RATE LIMIT from %s on %s", request.client.host if request.client else "unknown", request.url.path)
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded. Try again later.", "retry_after": str(exc.detail)},
    )


# --------------- FastAPI App ---------------


def create_app(
    settings: Optional[ExchangeSettings] = None,
    documents: Optional[DocumentStore] = None,
    blobs: Optional[BlobStorage] = None,
) -> FastAPI:
    """Build the application. Backends not given are opened from settings at startup.

    Settings are loaded in the lifespan hook, so a ConfigError aborts startup
    before any request is served.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        active_settings = settings if settings is not None else load_settings(CONFIG_PATH)
        owns_documents = documents is None
        active_documents = await open_document_store(active_settings.db_url) if owns_documents else documents
        active_blobs = blobs if blobs is not None else LocalBlobStorage(active_settings.blob_root)
        event_log = ExchangeLogger(
            name="exchange",
            level=active_settings.log_level,
            log_dir=Path(active_settings.log_dir) if active_settings.log_dir else None,
        )
        app.state.settings = active_settings
        app.state.dispatcher = build_dispatcher(active_settings, active_documents, active_blobs, event_log)
        logger.info("Exchange handler ready (sessions: %s)", active_settings.sessions_storage_path)
        try:
            yield
        finally:
            event_log.close()
            if owns_documents:
                await active_documents.close()

    app = FastAPI(
        title="Catalog Exchange API",
        description="Session-based catalog and report exchange endpoint",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.include_router(exchange_router)
    return app


app = create_app()


def main() -> None:
    """Run the server with uvicorn (``catalog-exchange`` console script)."""
    import uvicorn

    uvicorn.run(
        "catalog_exchange.api.server:app",
        host=os.environ.get("CATALOG_EXCHANGE_HOST", "0.0.0.0"),
        port=int(os.environ.get("CATALOG_EXCHANGE_PORT", "8080")),
    )
