from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel

from core.config import get_settings
from core.kv import BackendStatus, check_kv_backend, get_kv_backend
from schemas.api import ApiResponse
from schemas.generation import ALL_PROVIDERS, ProviderId


router = APIRouter()

ConfigState = Literal["configured", "not_configured"]


class HealthStatus(BaseModel):
    status: Literal["healthy", "degraded"]
    kv_backend: BackendStatus
    providers: dict[ProviderId, ConfigState]
    paid_api: ConfigState


@router.get("/health", response_model=ApiResponse[HealthStatus])
async def health_check() -> ApiResponse[HealthStatus]:
    """Health check endpoint for monitoring and load balancer health checks.

    The service stays usable without Upstash (no cache, fail-open quota), so
    only a backend that is configured but unreachable reports `degraded`.
    """
    settings = get_settings()
    kv_status = await check_kv_backend(get_kv_backend())
    providers: dict[ProviderId, ConfigState] = {
        p: "configured" if settings.provider_api_key(p) else "not_configured"
        for p in ALL_PROVIDERS
    }
    return ApiResponse(
        success=True,
        data=HealthStatus(
            status="degraded" if kv_status == "error" else "healthy",
            kv_backend=kv_status,
            providers=providers,
            paid_api="configured" if settings.YOUTUBE_API_KEY else "not_configured",
        ),
        message="Health check successful",
    )
