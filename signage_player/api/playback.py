from fastapi import APIRouter, Depends, HTTPException, Request

from signage_player.schemas.playback import CompletionOut, PlaybackOut
from signage_player.services.orchestrator import PlaybackOrchestrator

router = APIRouter(prefix="/playback", tags=["playback"])


def get_orchestrator(request: Request) -> PlaybackOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Player is not running")
    return orchestrator


@router.get("/current", response_model=PlaybackOut)
def current_playback(orchestrator: PlaybackOrchestrator = Depends(get_orchestrator)):
    return orchestrator.playback()


@router.post("/complete", response_model=CompletionOut)
async def complete(revision: int | None = None, orchestrator: PlaybackOrchestrator = Depends(get_orchestrator)):
    accepted = await orchestrator.report_completion(revision)
    return {"ok": True, "accepted": accepted, "revision": orchestrator.revision}


@router.post("/resolve", response_model=PlaybackOut)
async def resolve_now(orchestrator: PlaybackOrchestrator = Depends(get_orchestrator)):
    await orchestrator.reevaluate()
    return orchestrator.playback()


@router.get("/schedules")
def list_schedules(orchestrator: PlaybackOrchestrator = Depends(get_orchestrator)):
    snapshot = orchestrator.snapshot()
    return {
        "active_schedule_id": snapshot["active_schedule_id"],
        "live_schedule_ids": snapshot["live_schedule_ids"],
        "cursor": snapshot["cursor"],
        "schedules": snapshot["schedules"],
    }
