"""
Miscellaneous routes: health check.
"""

from fastapi import APIRouter

from ..config import config, state

router = APIRouter(tags=["misc"])


# ─────────────────────────────────────────────────────────────
# Health Check
# ─────────────────────────────────────────────────────────────

@router.get("/status")
async def health_check() -> dict:
    """API health check."""
    return {
        "status": "ok",
        "version": "1.0.0",
        "analysis_enabled": state.orchestrator is not None,
        "transcription_enabled": bool(state.transcription and state.transcription.client),
        "scheduler_running": bool(state.scheduler and state.scheduler.running),
        "auth_enabled": bool(config.AUTH_API_KEY),
    }
