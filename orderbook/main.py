"""Order-intake API built with FastAPI.

This module exposes endpoints to submit signed sell orders, list active
ones, record purchases, and report service health. Request shaping lives in
``lifecycle.OrderLifecycle``; persistence is delegated to the
SQLAlchemy-backed ``repo.OrderRepository``. Store calls are blocking and run
in the threadpool so each request is handled independently.

Every error is answered with ``{"success": false, "error": <message>}``.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import APIRouter, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings
from .errors import OrderbookError
from .lifecycle import OrderLifecycle
from .logging_filters import configure_logging
from .middleware import api_size_limit, request_id_middleware
from .repo import OrderRepository, init_db, make_engine, wait_for_db

logger = logging.getLogger("orderbook.api")

router = APIRouter()


def _lifecycle(request: Request) -> OrderLifecycle:
    return request.app.state.lifecycle


async def _json_body(request: Request):
    # Unparseable bodies are handed on as None and rejected by validation.
    try:
        return await request.json()
    except ValueError:
        return None


@router.get("/api/status")
def api_status():
    """Liveness check.

    Returns:
        dict: ``{"ok": True, "time": <ISO-8601 UTC timestamp>}``.
    """
    now = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return {"ok": True, "time": now.replace("+00:00", "Z")}


@router.get("/health")
def health(request: Request):
    """Readiness check covering database connectivity.

    Returns:
        JSONResponse: 200 when the database answers, 503 otherwise.
    """
    db_ok = True
    try:
        request.app.state.repository.ping()
    except SQLAlchemyError:
        logger.warning("health check: database unreachable")
        db_ok = False
    return JSONResponse(
        {"ok": db_ok, "components": {"db": {"ok": db_ok}}},
        status_code=200 if db_ok else 503,
    )


@router.post("/api/order")
async def submit_order(request: Request):
    """Create an order, or refresh the active order with the same orderHash.

    Responses:
        200 ``{success, order: {id, tokenId, price, seller, createdAt}}``;
        400 ``Missing parameters``; 409 ``Order already sold``;
        500 ``Server error``.
    """
    payload = await _json_body(request)
    return await run_in_threadpool(_lifecycle(request).submit, payload)


@router.get("/api/orders")
async def list_orders(request: Request, limit: int | None = None):
    """List active orders, newest first, with decoded ``seaportOrder`` payloads."""
    return await run_in_threadpool(_lifecycle(request).list_active, limit)


@router.post("/api/buy")
async def record_purchase(request: Request):
    """Record an on-chain purchase.

    Responses:
        200 ``{success, order}``; 400 ``Missing orderHash or buyerAddress``;
        404 ``Order not found``; 500 ``Server error``.
    """
    payload = await _json_body(request)
    return await run_in_threadpool(_lifecycle(request).record_purchase, payload)


async def orderbook_error_handler(request: Request, exc: OrderbookError):
    if exc.status_code >= 500:
        logger.error(
            "request failed",
            exc_info=exc,
            extra={"path": request.url.path, "method": request.method},
        )
    return JSONResponse({"success": False, "error": exc.message}, status_code=exc.status_code)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse({"success": False, "error": "Invalid request"}, status_code=400)


def create_app(settings: Settings | None = None, engine=None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Deployment settings; read from the environment when omitted.
        engine: SQLAlchemy engine; built from ``settings.database_url`` when
            omitted.

    Returns:
        FastAPI: Configured application. On startup it waits for the
        database and creates the orders table.
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    engine = engine if engine is not None else make_engine(settings)
    repository = OrderRepository(engine, settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        await run_in_threadpool(wait_for_db, engine, settings.db_startup_timeout)
        await run_in_threadpool(init_db, engine)
        logger.info("orderbook started", extra={"dialect": engine.dialect.name})
        yield
        engine.dispose()

    app = FastAPI(title="Orderbook Service", lifespan=lifespan)
    app.state.settings = settings
    app.state.repository = repository
    app.state.lifecycle = OrderLifecycle(repository)

    # Last registered runs outermost.
    app.middleware("http")(api_size_limit(settings.api_max_bytes))
    app.middleware("http")(request_id_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.add_exception_handler(OrderbookError, orderbook_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.include_router(router)
    return app
