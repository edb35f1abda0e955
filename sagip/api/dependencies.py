"""FastAPI dependencies resolving services created by the app lifespan."""

from __future__ import annotations

from fastapi import HTTPException, Request

from sagip.services.directory_store import DirectoryStore
from sagip.services.moderation import ModerationService


def get_moderation_service(request: Request) -> ModerationService:
    """Retrieve the moderation service from app state, or raise 503."""
    service = getattr(request.app.state, "moderation", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Moderation service not initialised.")
    return service


def get_directory_store(request: Request) -> DirectoryStore:
    store = getattr(request.app.state, "directory_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Directory store not initialised.")
    return store
