"""In-process registry of live quiz sessions."""
import logging
import threading
import time
import uuid
from typing import Callable, Dict, List, Optional
from app.config import settings
from app.services.quiz_engine import GameMode, QuizMode, QuizSession

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):
    """Raised for unknown, finished or expired session ids."""


class SessionRegistry:
    """
    Map session ids to live ``QuizSession`` objects.

    A session leaves the registry as soon as it completes or is abandoned,
    so finished sessions are never answered twice. Sessions untouched for
    ``idle_timeout`` seconds are abandoned on the next ``start`` or ``get``,
    and when ``max_sessions`` are live the least recently used one is
    abandoned to make room. ``shutdown`` abandons everything still live.
    """

    def __init__(
        self,
        tick_interval: Optional[float] = None,
        idle_timeout: Optional[float] = None,
        max_sessions: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.tick_interval = tick_interval
        self.idle_timeout = idle_timeout
        self.max_sessions = max_sessions
        self._clock = clock
        self._sessions: Dict[str, QuizSession] = {}
        self._last_seen: Dict[str, float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def start(self, game_mode: GameMode, quiz_mode: QuizMode = QuizMode.TYPED, **kwargs) -> QuizSession:
        """Create, start and register a new session."""
        self.expire_idle()
        self._make_room()

        session_id = uuid.uuid4().hex
        session = QuizSession(
            game_mode,
            quiz_mode,
            tick_interval=self.tick_interval,
            session_id=session_id,
            **kwargs
        )
        session.on_end(self._drop)
        session.start()

        with self._lock:
            self._sessions[session_id] = session
            self._last_seen[session_id] = self._clock()

        logger.info(
            f"Started {session.game_mode.value} session",
            extra={"session_id": session_id, "game_mode": session.game_mode.value}
        )
        return session

    def get(self, session_id: str) -> QuizSession:
        """Look up a live session and mark it as used."""
        self.expire_idle()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                self._last_seen[session_id] = self._clock()
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def abandon(self, session_id: str) -> None:
        """Discard a live session; its partial state is never persisted."""
        session = self.get(session_id)
        session.abandon()
        logger.info("Session abandoned", extra={"session_id": session_id})

    def expire_idle(self) -> int:
        """Abandon sessions idle longer than ``idle_timeout``. Returns the count."""
        if self.idle_timeout is None:
            return 0
        cutoff = self._clock() - self.idle_timeout
        with self._lock:
            stale = [
                self._sessions[session_id]
                for session_id, seen in self._last_seen.items()
                if seen < cutoff
            ]
        # on_end hooks take the lock, so abandon outside it
        for session in stale:
            session.abandon()
            logger.info("Idle session expired", extra={"session_id": session.session_id})
        return len(stale)

    def _make_room(self) -> None:
        if self.max_sessions is None:
            return
        with self._lock:
            excess = len(self._sessions) - self.max_sessions + 1
            by_age: List[str] = sorted(self._last_seen, key=self._last_seen.get)
            evicted = [self._sessions[session_id] for session_id in by_age[:max(excess, 0)]]
        for session in evicted:
            session.abandon()
            logger.warning(
                "Live session limit reached, abandoned least recently used session",
                extra={"session_id": session.session_id}
            )

    def shutdown(self) -> int:
        """Abandon all live sessions. Returns how many were abandoned."""
        with self._lock:
            sessions = list(self._sessions.values())
        for session in sessions:
            session.abandon()
        if sessions:
            logger.info(f"Abandoned {len(sessions)} live sessions on shutdown")
        return len(sessions)

    def _drop(self, session: QuizSession) -> None:
        with self._lock:
            self._sessions.pop(session.session_id, None)
            self._last_seen.pop(session.session_id, None)


registry = SessionRegistry(
    tick_interval=settings.DISPLAY_TICK_SECONDS,
    idle_timeout=settings.SESSION_IDLE_TIMEOUT_SECONDS,
    max_sessions=settings.MAX_LIVE_SESSIONS
)
"""Process-wide registry used by the API."""


def get_registry() -> SessionRegistry:
    """FastAPI dependency returning the process-wide registry."""
    return registry
