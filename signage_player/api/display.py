from fastapi import APIRouter, Depends

from signage_player.api.playback import get_orchestrator
from signage_player.services.orchestrator import PlaybackOrchestrator

router = APIRouter(prefix="/display", tags=["display"])


@router.get("")
@router.get("/")
def display_info(orchestrator: PlaybackOrchestrator = Depends(get_orchestrator)):
    snapshot = orchestrator.snapshot()
    return {
        "display_id": snapshot["display_id"],
        "display": snapshot["display"],
        "status": snapshot["status"],
        "error": snapshot["error"],
        "revision": snapshot["revision"],
        "debug_enabled": snapshot["debug_enabled"],
    }


@router.get("/debug")
def debug_state(orchestrator: PlaybackOrchestrator = Depends(get_orchestrator)):
    return {"enabled": orchestrator.debug_enabled}
