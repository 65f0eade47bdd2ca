"""FastAPI application for the multi-provider API key pool proxy."""

import hmac
import logging
from contextlib import asynccontextmanager
from typing import Dict

import httpx
import uvicorn
from fastapi import FastAPI, Request
from starlette.responses import Response

from keypool_proxy.admin import admin_router
from keypool_proxy.config import Config, load_config
from keypool_proxy.errors import ProxyError, Unauthorized
from keypool_proxy.key_pool import build_key_pools
from keypool_proxy.proxy import proxy_request
from keypool_proxy.ratelimit import RateLimiter
from keypool_proxy.router import Router

logger = logging.getLogger(__name__)

PUBLIC_PATHS = frozenset({"/health"})


def build_http_client(config: Config) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(10.0, read=config.request_timeout_seconds, write=30.0),
        limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
    )


def configure_app_state(
    app: FastAPI, config: Config, http_client: httpx.AsyncClient
) -> None:
    app.state.config = config
    app.state.http_client = http_client
    app.state.key_pools = build_key_pools(config)
    app.state.router = Router.from_config(config)
    app.state.rate_limiter = RateLimiter(
        max_requests=config.rate_limit_requests,
        window_seconds=config.rate_limit_window_seconds,
        max_clients=config.rate_limit_max_clients,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle: startup and shutdown."""
    config = load_config()

    logging.basicConfig(level=getattr(logging, config.log_level, logging.INFO))

    http_client = build_http_client(config)
    configure_app_state(app, config, http_client)

    for provider, pool in app.state.key_pools.items():
        logger.info(
            "%s: %d keys, %s selection", provider, len(pool), config.selection_policy
        )
    logger.info(
        "Key pool proxy started (default provider %s, access token %s)",
        config.default_provider,
        "required" if config.access_token else "disabled",
    )

    yield

    await http_client.aclose()
    logger.info("Key pool proxy stopped")


app = FastAPI(title="API Key Pool Proxy", lifespan=lifespan)


@app.middleware("http")
async def access_control(request: Request, call_next) -> Response:
    """Check X-Access-Token when configured and open CORS on every response."""
    access_token = request.app.state.config.access_token
    if access_token and request.url.path not in PUBLIC_PATHS:
        provided = request.headers.get("x-access-token", "")
        if not hmac.compare_digest(provided.encode(), access_token.encode()):
            logger.warning("Rejected request to %s: bad access token", request.url.path)
            response: Response = Unauthorized().to_response()
        else:
            response = await call_next(request)
    else:
        response = await call_next(request)

    response.headers["Access-Control-Allow-Origin"] = "*"
    return response


@app.exception_handler(ProxyError)
async def proxy_error_handler(request: Request, exc: ProxyError) -> Response:
    return exc.to_response()


# Include routers BEFORE catch-all route
app.include_router(admin_router)


@app.get("/health")
async def health_check(request: Request) -> Dict[str, object]:
    """Health check endpoint with key pool status."""
    key_pools = request.app.state.key_pools
    return {
        "status": "healthy",
        "providers": {
            provider: {
                "keys_available": pool.available_count(),
                "total_keys": len(pool),
            }
            for provider, pool in key_pools.items()
        },
    }


@app.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"],
)
async def proxy_endpoint(request: Request, path: str):
    """Catch-all proxy endpoint that forwards requests upstream."""
    return await proxy_request(
        request=request,
        key_pools=request.app.state.key_pools,
        router=request.app.state.router,
        rate_limiter=request.app.state.rate_limiter,
        http_client=request.app.state.http_client,
        config=request.app.state.config,
    )


def run() -> None:
    config = load_config()
    uvicorn.run(
        "keypool_proxy.main:app",
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )
