"""Global error handlers."""
from fastapi import Request
from fastapi.responses import JSONResponse

from src.core.errors import MetricsUnavailableError


async def metrics_unavailable_handler(request: Request, exc: MetricsUnavailableError):
    return JSONResponse(
        status_code=503,
        content={"error": str(exc), "code": "METRICS_UNAVAILABLE", "details": {}},
    )
