from __future__ import annotations

from dataclasses import dataclass

from app.services.sessions import SessionStore
from app.services.staging import StagingEngine


@dataclass(frozen=True)
class ApiDeps:
    engine: StagingEngine
    sessions: SessionStore
