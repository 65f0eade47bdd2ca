"""Errors the proxy reports to its callers instead of an upstream response."""

import math
from typing import Dict, Optional

from starlette.responses import JSONResponse


class ProxyError(Exception):
    status_code = 500
    status = "INTERNAL"
    message = "Internal error in key rotator"

    def __init__(
        self, message: Optional[str] = None, headers: Optional[Dict[str, str]] = None
    ):
        super().__init__(message or self.message)
        if message:
            self.message = message
        self.headers = headers or {}

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            content={
                "error": {
                    "code": self.status_code,
                    "message": self.message,
                    "status": self.status,
                }
            },
            status_code=self.status_code,
            headers=self.headers,
        )


class Unauthorized(ProxyError):
    status_code = 401
    status = "UNAUTHENTICATED"
    message = "Missing or invalid X-Access-Token"


class RateLimited(ProxyError):
    status_code = 429
    status = "RESOURCE_EXHAUSTED"
    message = "Too many requests from this client"

    def __init__(self, retry_after: float):
        super().__init__(headers={"Retry-After": str(max(1, math.ceil(retry_after)))})


class PoolExhausted(ProxyError):
    status_code = 429
    status = "RESOURCE_EXHAUSTED"
    message = "All API keys exhausted"

    def __init__(self, provider: str, retry_after: float):
        super().__init__(
            f"All API keys for {provider} are cooling down",
            headers={"Retry-After": str(max(1, math.ceil(retry_after)))},
        )


class ProviderNotConfigured(ProxyError):
    status_code = 500
    status = "INTERNAL"

    def __init__(self, provider: str):
        super().__init__(f"No API keys configured for provider {provider}")


class RetriesExhausted(ProxyError):
    status_code = 502
    status = "UNAVAILABLE"

    def __init__(self, attempts: int, last_status: Optional[int]):
        reason = f"status {last_status}" if last_status else "a network error"
        super().__init__(
            f"Upstream unavailable: {attempts} attempt(s) failed, last with {reason}"
        )
        self.attempts = attempts
        self.last_status = last_status
