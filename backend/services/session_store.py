import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from config import settings
from models.game import GameState, RoleConfig

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_role_config() -> RoleConfig:
    return RoleConfig(
        mafia_count=settings.default_mafia_count,
        doctor_count=settings.default_doctor_count,
        detective_count=settings.default_detective_count,
    )


class GameSession(BaseModel):
    """
    Everything one device holds for one game night.
    Owned by the game controller; `state` is replaced wholesale on every commit.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8].upper())
    names: List[str] = []
    role_config: RoleConfig = Field(default_factory=default_role_config)
    state: GameState = GameState()
    loading: Optional[str] = None  # set while narration is in flight
    created_at: datetime = Field(default_factory=_utcnow)
    last_active: datetime = Field(default_factory=_utcnow)

    def touch(self) -> None:
        self.last_active = _utcnow()


class SessionNotFound(KeyError):
    pass


class SessionStore:
    """
    In-process registry of game sessions.
    Nothing is persisted: restarting the process ends every game. Sessions
    left idle longer than `idle_timeout` are dropped whenever a new one opens.
    """

    def __init__(self, idle_timeout: Optional[timedelta] = None):
        self._sessions: Dict[str, GameSession] = {}
        self.idle_timeout = idle_timeout or timedelta(minutes=settings.session_idle_minutes)

    def create(self) -> GameSession:
        self.prune()
        session = GameSession()
        while session.id in self._sessions:
            session = GameSession()
        self._sessions[session.id] = session
        return session

    def get(self, game_id: str) -> Optional[GameSession]:
        return self._sessions.get(game_id)

    def require(self, game_id: str) -> GameSession:
        session = self._sessions.get(game_id)
        if session is None:
            raise SessionNotFound(game_id)
        return session

    def delete(self, game_id: str) -> bool:
        return self._sessions.pop(game_id, None) is not None

    def count(self) -> int:
        return len(self._sessions)

    def prune(self, now: Optional[datetime] = None) -> int:
        """Drop idle sessions. A session waiting on narration is never dropped."""
        cutoff = (now or _utcnow()) - self.idle_timeout
        stale = [
            s.id for s in self._sessions.values()
            if s.last_active < cutoff and not s.loading
        ]
        for game_id in stale:
            del self._sessions[game_id]
            logger.info("[%s] Session expired after %s idle", game_id, self.idle_timeout)
        return len(stale)


_session_store: Optional["SessionStore"] = None


def get_session_store() -> "SessionStore":
    """Lazy singleton. Use as a FastAPI dependency: Depends(get_session_store)"""
    global _session_store
    if _session_store is None:
        _session_store = SessionStore()
    return _session_store
