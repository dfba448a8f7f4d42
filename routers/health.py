from fastapi import APIRouter, Request
from schemas.health import HealthResponse

health_router = APIRouter(tags=["health"])


@health_router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    """
    Liveness check. Cheap and in-process only.

    Returns:
    - status: always "ok" while the process serves requests
    - sessions: number of active host sessions
    - connections: number of open WebSocket connections
    """
    return HealthResponse(
        status="ok",
        sessions=len(request.app.state.registry),
        connections=len(request.app.state.manager),
    )
