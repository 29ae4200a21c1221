from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter()


@router.get("/healthz", summary="Liveness Probe", response_class=PlainTextResponse)
async def liveness():
    """
    Liveness probe to check if the application process is running.
    """
    return "ok"


@router.get("/readyz", summary="Readiness Probe", response_class=PlainTextResponse)
async def readiness():
    """
    Readiness probe.

    The service holds no connections; the JWKS is fetched lazily on the first
    exchange, so a running process is ready.
    """
    return "ok"
