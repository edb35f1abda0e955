"""Sagip service layer -- admission control, verification, and moderation.

Everything here is constructed explicitly by the app lifespan (see
``sagip.main``) and shared through ``app.state``; nothing holds
module-level mutable state.
"""

from __future__ import annotations

from sagip.services.admission import AdmissionLimiter, AdmissionResult
from sagip.services.directory_store import DirectoryStore, InMemoryDirectoryStore
from sagip.services.moderation import ModerationService
from sagip.services.verdicts import VerdictStore

__all__ = [
    "AdmissionLimiter",
    "AdmissionResult",
    "DirectoryStore",
    "InMemoryDirectoryStore",
    "ModerationService",
    "VerdictStore",
]
