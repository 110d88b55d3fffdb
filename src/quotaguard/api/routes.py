"""Admin API routes over the rate limiter."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from pydantic import BaseModel, Field

from quotaguard.quota import InvalidQuotaConfigError, QuotaConfig, RateLimiter
from quotaguard.store import StoreUnavailableError

logger = logging.getLogger(__name__)
router = APIRouter()


def get_limiter(request: Request) -> RateLimiter:
    """Limiter built during application startup."""
    return request.app.state.limiter


# --- Request Models ---


class QuotaConfigRequest(BaseModel):
    """Replacement quota for a dependency. Limits are validated by the limiter."""

    window_seconds: float = Field(..., description="Fixed window length in seconds")
    max_requests: int = Field(..., description="Calls admitted per window")
    burst_limit: int | None = Field(default=None, description="Calls admitted per second")


# --- Endpoints ---


@router.get("/limits")
async def list_limits(limiter: RateLimiter = Depends(get_limiter)) -> dict[str, Any]:
    """List configured dependencies and their quotas."""
    return {
        "apis": {
            name: config.to_dict()
            for name, config in limiter.registry.snapshot().items()
        }
    }


@router.get("/limits/{name}")
async def current_limits(
    name: str,
    identifier: str | None = Query(default=None),
    limiter: RateLimiter = Depends(get_limiter),
) -> dict[str, Any]:
    """Quota and live window counts for a scope, without counting a call."""
    limits = await limiter.get_current_limits(name, identifier)
    return limits.to_dict()


@router.post("/limits/{name}/check")
async def check(
    name: str,
    identifier: str | None = Query(default=None),
    limiter: RateLimiter = Depends(get_limiter),
) -> dict[str, Any]:
    """Admit or reject one outbound call."""
    decision = await limiter.check_rate_limit(name, identifier)
    return decision.to_dict()


@router.post("/limits/{name}/record", status_code=status.HTTP_204_NO_CONTENT)
async def record(
    name: str,
    identifier: str | None = Query(default=None),
    success: bool = Query(default=True),
    limiter: RateLimiter = Depends(get_limiter),
) -> Response:
    """Count a completed outbound call in usage statistics."""
    await limiter.record_request(name, identifier, success)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/limits/{name}/stats")
async def stats(
    name: str,
    identifier: str | None = Query(default=None),
    days: int = Query(default=7, ge=1, le=31),
    limiter: RateLimiter = Depends(get_limiter),
) -> dict[str, Any]:
    """Daily usage for the last ``days`` days."""
    daily = await limiter.get_api_stats(name, identifier, days)
    return {
        "dependency": name,
        "identifier": identifier or "default",
        "days": {day: entry.to_dict() for day, entry in daily.items()},
    }


@router.post("/limits/{name}/reset", status_code=status.HTTP_204_NO_CONTENT)
async def reset(
    name: str,
    identifier: str | None = Query(default=None),
    limiter: RateLimiter = Depends(get_limiter),
) -> Response:
    """Clear the main and burst windows of a scope."""
    try:
        await limiter.reset_rate_limit(name, identifier)
    except StoreUnavailableError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Store unavailable: {e}",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/limits/{name}/config")
async def update_config(
    name: str,
    body: QuotaConfigRequest,
    limiter: RateLimiter = Depends(get_limiter),
) -> dict[str, Any]:
    """Replace the quota of a dependency."""
    config = QuotaConfig(
        dependency_name=name,
        window_seconds=body.window_seconds,
        max_requests=body.max_requests,
        burst_limit=body.burst_limit,
    )
    try:
        updated = limiter.update_config(name, config)
    except InvalidQuotaConfigError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return updated.to_dict()
