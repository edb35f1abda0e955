"""Public directory endpoint for Sagip v1.

Lists approved emergency services.  Entries only get here through a
moderator approval.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from sagip.api.dependencies import get_directory_store
from sagip.models.directory import DirectoryEntry
from sagip.models.enums import ServiceCategory
from sagip.services.directory_store import DirectoryStore

router = APIRouter(prefix="/directory", tags=["directory"])


class DirectoryResponse(BaseModel):
    entries: list[DirectoryEntry]
    total: int


@router.get("", response_model=DirectoryResponse)
async def list_directory(
    category: ServiceCategory | None = Query(default=None),
    city: str | None = Query(default=None, max_length=100),
    store: DirectoryStore = Depends(get_directory_store),
) -> DirectoryResponse:
    """Approved services, national hotlines first, then by name."""
    entries = await store.list_entries()
    if category is not None:
        entries = [e for e in entries if e.category == category]
    if city:
        wanted = city.strip().casefold()
        entries = [e for e in entries if e.city and e.city.casefold() == wanted]
    entries.sort(key=lambda e: (not e.is_national, e.name.casefold()))
    return DirectoryResponse(entries=entries, total=len(entries))
