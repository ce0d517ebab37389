from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/metrics", tags=["System"], summary="Broadcast counters")
def metrics(request: Request) -> dict:
    hub = request.app.state.hub
    return {
        "hub_closed": hub.is_closed,
        **hub.stats(),
    }
