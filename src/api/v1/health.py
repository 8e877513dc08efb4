from fastapi import APIRouter

from dependencies.runtime import RuntimeDep
from schemas.api import ApiResponse, HealthStatus


router = APIRouter()


@router.get("/health", response_model=ApiResponse[HealthStatus])
async def health_check(runtime: RuntimeDep) -> ApiResponse[HealthStatus]:
    """Liveness plus retention state counters once the bot is running."""
    if runtime is None or not runtime.running or runtime.engine is None:
        return ApiResponse(
            success=True,
            data=HealthStatus(status="starting", message="Bot is not running yet"),
            message="Health check successful",
        )

    engine = runtime.engine
    stats = engine.stats()
    return ApiResponse(
        success=True,
        data=HealthStatus(
            status="healthy",
            message=f"{runtime.settings.APP_NAME} is running",
            update_mode=runtime.update_mode,
            policies=stats["policies"],
            scheduled=stats["scheduled"],
            tracked=stats["tracked"],
            persist_failures=engine.persist_failures,
        ),
        message="Health check successful",
    )
