from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request) -> dict:
    registry = request.app.state.registry
    connections = request.app.state.connections
    return {
        "status": "healthy",
        "online": await registry.count(),
        "connections": len(connections.snapshot()),
    }
