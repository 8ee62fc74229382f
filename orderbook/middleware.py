"""HTTP middleware that assigns request identifiers and bounds payload size.

Behavior contract:
- If the incoming request carries an ``X-Request-ID`` header, that value is
  reused as the request id; otherwise a new UUIDv4 is generated.
- The id is stored on ``request.state`` and in a ContextVar so log records
  emitted anywhere downstream can be correlated.
- The response always carries the same id in ``X-Request-ID``, including
  the 500 ``Server error`` envelope built here for unexpected exceptions.
- ``/api/`` requests that announce a Content-Length above the configured
  limit are answered with 413 before the body is read.
"""

import contextvars
import logging
import uuid

from fastapi import Request
from fastapi.responses import JSONResponse

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
REQUEST_HEADER = "X-Request-ID"
RESPONSE_HEADER = "X-Request-ID"

logger = logging.getLogger("orderbook.http")


async def request_id_middleware(request: Request, call_next):
    rid = request.headers.get(REQUEST_HEADER) or str(uuid.uuid4())
    request.state.request_id = rid
    token = REQUEST_ID_CTX.set(rid)
    response = None
    try:
        response = await call_next(request)
    except Exception as exc:
        logger.error(
            "unhandled error",
            exc_info=exc,
            extra={"path": request.url.path, "method": request.method},
        )
        response = JSONResponse({"success": False, "error": "Server error"}, status_code=500)
    finally:
        status_code = response.status_code if response is not None else 500
        logger.info(
            "request handled",
            extra={"path": request.url.path, "method": request.method, "status": status_code},
        )
        REQUEST_ID_CTX.reset(token)
    response.headers[RESPONSE_HEADER] = rid
    return response


def api_size_limit(max_bytes: int):
    """Build a middleware rejecting oversized ``/api/`` requests.

    Args:
        max_bytes: Largest accepted Content-Length.

    Returns:
        Callable usable with ``app.middleware("http")``.
    """

    async def limit(request: Request, call_next):
        if request.url.path.startswith("/api/"):
            clen = request.headers.get("content-length")
            if clen and clen.isdigit() and int(clen) > max_bytes:
                return JSONResponse({"success": False, "error": "Payload too large"}, status_code=413)
        return await call_next(request)

    return limit
