import logging
from typing import Dict, Optional, Set

import httpx
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import Response, StreamingResponse

from keypool_proxy.config import Config
from keypool_proxy.cooldown import is_retryable
from keypool_proxy.errors import (
    PoolExhausted,
    ProviderNotConfigured,
    RateLimited,
    RetriesExhausted,
)
from keypool_proxy.key_pool import KeyPool
from keypool_proxy.ratelimit import RateLimiter, client_id_from_request
from keypool_proxy.router import HOP_BY_HOP_HEADERS, Router

logger = logging.getLogger(__name__)

# Non-standard status used by nginx for "client closed request".
CLIENT_CLOSED_REQUEST = 499


def max_attempts(pool: KeyPool, config: Config) -> int:
    if config.max_retries <= 0:
        return len(pool)
    return min(config.max_retries, len(pool))


async def proxy_request(
    request: Request,
    key_pools: Dict[str, KeyPool],
    router: Router,
    rate_limiter: RateLimiter,
    http_client: httpx.AsyncClient,
    config: Config,
) -> Response:
    """
    Forward a request upstream, rotating keys on retryable failures.

    Flow:
    1. Rate-limit the client (429, no key consumed)
    2. Route by path prefix to a provider and its key pool
    3. Loop at most once per key (or MAX_RETRIES times):
       a. select_key() from the pool; none eligible -> 429 pool exhausted
       b. Inject the key the way the provider expects it
       c. Forward via httpx and read the body (event streams are relayed lazily)
       d. 401/403/429/5xx or a transport error, also mid-body
          -> cool the key down, next key
       e. Anything else -> record usage and pass the response through
    4. Attempts used up -> 502
    """
    client_id = client_id_from_request(request)
    if await rate_limiter.is_limited(client_id):
        logger.warning("Rate limit exceeded for client %s", client_id)
        raise RateLimited(rate_limiter.seconds_until_allowed(client_id))

    route = router.route(request.url.path, request.url.query, dict(request.headers))
    pool = key_pools.get(route.provider.name)
    if pool is None or not len(pool):
        raise ProviderNotConfigured(route.provider.name)

    body = await request.body()
    attempts = max_attempts(pool, config)
    tried: Set[int] = set()
    last_status: Optional[int] = None

    for attempt in range(attempts):
        if attempt and await request.is_disconnected():
            logger.info(
                "Client %s disconnected, abandoning after %d attempt(s)",
                client_id,
                attempt,
            )
            return Response(status_code=CLIENT_CLOSED_REQUEST)

        index = await pool.select_key(exclude=tried)
        if index is None:
            logger.warning("All %s keys are cooling down", pool.provider)
            raise PoolExhausted(pool.provider, pool.seconds_until_available())
        tried.add(index)

        entry = pool.entries[index]
        url, headers, params = route.authorize(entry.credential)
        upstream_request = http_client.build_request(
            method=request.method,
            url=url,
            content=body,
            headers=headers,
            params=params,
        )

        response: Optional[httpx.Response] = None
        try:
            response = await http_client.send(upstream_request, stream=True)
            if not is_retryable(response.status_code) and not _is_event_stream(
                response
            ):
                await response.aread()
        except httpx.RequestError as exc:
            if response is not None:
                await response.aclose()
            last_status = None
            duration = await pool.cool_down(index, None)
            logger.error(
                "Request error from %s (key=%s, attempt=%d): %s; cooling down %.0fs",
                pool.provider,
                entry.key_prefix(),
                attempt + 1,
                exc,
                duration,
            )
            continue

        if is_retryable(response.status_code):
            await response.aclose()
            last_status = response.status_code
            duration = await pool.cool_down(index, last_status)
            logger.warning(
                "%d from %s (key=%s, attempt=%d); cooling down %.0fs",
                last_status,
                pool.provider,
                entry.key_prefix(),
                attempt + 1,
                duration,
            )
            continue

        await pool.record_success(index)
        return await _relay_response(response)

    logger.error(
        "All %d attempt(s) against %s failed, last status %s",
        attempts,
        pool.provider,
        last_status,
    )
    raise RetriesExhausted(attempts, last_status)


def _is_event_stream(response: httpx.Response) -> bool:
    media_type = response.headers.get("content-type", "")
    return media_type.startswith("text/event-stream")


async def _relay_response(response: httpx.Response) -> Response:
    """Pass an upstream response through, streaming server-sent events.

    Non-streaming bodies must already have been read by the caller.
    """
    resp_headers = {
        k: v for k, v in response.headers.items() if k.lower() not in HOP_BY_HOP_HEADERS
    }
    media_type: Optional[str] = response.headers.get("content-type")

    if _is_event_stream(response):
        return StreamingResponse(
            response.aiter_bytes(),
            status_code=response.status_code,
            headers=resp_headers,
            media_type=media_type,
            background=BackgroundTask(response.aclose),
        )

    await response.aclose()
    return Response(
        content=response.content,
        status_code=response.status_code,
        headers=resp_headers,
        media_type=media_type,
    )
