"""Worker-only probes (APP_ROLE=worker)."""

import os

from fastapi import APIRouter

router = APIRouter()


@router.get("/tasks/health")
def tasks_health() -> dict:
    """Report the task backend and whether transcription can run."""
    return {
        "status": "ok",
        "subsystem": "tasks",
        "backend": os.environ.get("TASKS_BACKEND", "inline"),
        "transcription": bool(os.environ.get("GROQ_API_KEY")),
    }
