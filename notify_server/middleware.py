"""
MODULE OVERVIEW:
FastAPI middleware that times every HTTP request.

WHAT IS HAPPENING HERE:
An `X-Process-Time-Ms` header shows how long the route itself took. Intake
routes should stay in the low milliseconds: they only publish and return 202,
the actual processing happens later on the consumer.
"""

import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from loguru import logger

QUIET_PATHS = ("/healthz", "/stats")


class TimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()

        response = await call_next(request)

        process_time_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Process-Time-Ms"] = f"{process_time_ms:.2f}"

        if request.url.path not in QUIET_PATHS:
            logger.debug(
                f"{request.method} {request.url.path} status={response.status_code} "
                f"completed in {process_time_ms:.2f}ms"
            )

        return response
