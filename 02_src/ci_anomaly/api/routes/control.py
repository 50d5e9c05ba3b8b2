"""Pipeline control routes: data reset and the build replay simulator."""

from typing import Any

from pydantic import BaseModel
from fastapi import APIRouter, HTTPException

from ...app import IApplication
from ...logging_config import get_logger

logger = get_logger(__name__)


class ControlResponse(BaseModel):
    """Acknowledgement of a control action."""

    status: str


# Build replayer registered by main.py; None when running without one
_sim_instance: Any = None


def set_sim_instance(sim: Any) -> None:
    """Register the build replay simulator."""
    global _sim_instance
    _sim_instance = sim


def get_sim_instance() -> Any:
    """Return the registered build replay simulator, if any."""
    return _sim_instance


def _require_sim() -> Any:
    if not _sim_instance:
        raise HTTPException(status_code=404, detail="Build replay simulator is not configured")
    return _sim_instance


def create_control_router(app: IApplication) -> APIRouter:
    """Create control router."""
    router = APIRouter(prefix="/api/control", tags=["control"])

    @router.post("/reset", response_model=ControlResponse)
    async def reset_pipeline() -> dict:
        """Drain the ingest queue and forget stored conversations and tracked builds."""
        try:
            await app.reset()
        except Exception as e:
            logger.error("Pipeline reset failed: %s", e, exc_info=True)
            raise HTTPException(status_code=500, detail=f"Reset failed: {e}")
        return {"status": "ok"}

    @router.post("/sim/start", response_model=ControlResponse)
    async def start_replay() -> dict:
        """
        Replay the next simulated build.

        Publishes a full event sequence for a new build number, from the first
        build-log chunk to the final secret-scan marker.
        """
        sim = _require_sim()
        try:
            await sim.start()
        except Exception as e:
            logger.error("Could not start build replay: %s", e, exc_info=True)
            raise HTTPException(status_code=500, detail=f"Build replay failed to start: {e}")
        return {"status": "ok"}

    @router.post("/sim/stop", response_model=ControlResponse)
    async def stop_replay() -> dict:
        """Cancel an in-flight build replay; already published events stay queued."""
        sim = _require_sim()
        try:
            await sim.stop()
        except Exception as e:
            logger.error("Could not stop build replay: %s", e, exc_info=True)
            raise HTTPException(status_code=500, detail=f"Build replay failed to stop: {e}")
        return {"status": "ok"}

    return router
