"""Admin endpoints for inspecting the key pools."""

from typing import Dict

from fastapi import APIRouter, HTTPException, Request

admin_router = APIRouter(prefix="/admin", tags=["admin"])


@admin_router.get("/status")
async def get_all_status(request: Request) -> Dict[str, object]:
    """Get status of every provider's key pool."""
    key_pools = request.app.state.key_pools
    return {
        "providers": {
            provider: pool.get_status() for provider, pool in key_pools.items()
        }
    }


@admin_router.get("/status/{provider}")
async def get_provider_status(request: Request, provider: str) -> Dict[str, object]:
    """Get status of one provider's key pool."""
    pool = request.app.state.key_pools.get(provider)
    if pool is None:
        raise HTTPException(status_code=404, detail=f"Provider {provider} not found")
    return pool.get_status()


@admin_router.post("/reset")
async def reset_cooldowns(request: Request) -> Dict[str, str]:
    """Put every key back into rotation."""
    for pool in request.app.state.key_pools.values():
        await pool.reset_cooldowns()
    return {"message": "Cooldowns reset successfully"}
