"""HTTP routers — /tools/{operation} and /pricing.

No business logic. Delegates to the ``OperationDesk`` stored on
``app.state.desk`` and maps the error taxonomy onto HTTP statuses.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Request
from fastapi.responses import JSONResponse

from rwa_signals.api.operations import OperationDesk
from rwa_signals.errors import SignalServiceError

logger = logging.getLogger("rwa_signals.api")
router = APIRouter()


def _desk(request: Request) -> OperationDesk:
    return request.app.state.desk


def _error(status: int, kind: str, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"status": "error", "error": {"kind": kind, "message": message, **extra}},
    )


# ── Pricing ──────────────────────────────────────────────────────────────


@router.get("/pricing")
async def get_pricing(request: Request):
    """Price list for every operation. Not gated."""
    return _desk(request).pricing()


# ── Operations ───────────────────────────────────────────────────────────


@router.get("/tools")
async def list_tools(request: Request):
    return {"tools": _desk(request).operations}


@router.post("/tools/{operation}")
async def call_tool(
    operation: str,
    request: Request,
    arguments: Optional[dict] = Body(default=None),
):
    """Invoke one operation with a JSON object of keyword arguments.

    The request headers are handed to the payment gate as context.
    """
    desk = _desk(request)
    if operation not in desk.operations:
        return _error(
            404, "unknown_operation", f"Unknown operation: {operation}",
            available=desk.operations,
        )

    try:
        data = await desk.invoke(operation, arguments or {}, dict(request.headers))
    except SignalServiceError as exc:
        if exc.http_status >= 500:
            logger.error("%s failed: %s", operation, exc.message)
        return JSONResponse(
            status_code=exc.http_status,
            content={"status": "error", "error": exc.to_dict()},
        )
    except ValueError as exc:
        return _error(422, "invalid_request", str(exc))

    return {"status": "success", "operation": operation, "data": data}
