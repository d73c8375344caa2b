from fastapi import APIRouter, Depends, status

from ..dependencies import get_transport
from ..transport import DiscordTransport

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", status_code=status.HTTP_200_OK)
async def healthcheck(transport: DiscordTransport | None = Depends(get_transport)) -> dict[str, str]:
    """Liveness plus whether the chat bot credential is present."""

    configured = transport is not None and transport.configured
    return {"status": "ok", "chatIntegration": "configured" if configured else "disabled"}
