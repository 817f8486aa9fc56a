"""Session management for in-memory conversations."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from cuid2 import cuid_wrapper

from copilot.clients.base import InferenceEngine
from copilot.clients.factory import create_engine
from copilot.config import get_settings
from copilot.services.context_builder import create_token_estimator
from copilot.services.conversation_store import ConversationStore
from copilot.services.orchestrator import TurnOrchestrator
from copilot.tools.browser import BrowserBridgeBackend
from copilot.tools.registry import get_tools_registry
from copilot.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()

OrchestratorFactory = Callable[[ConversationStore], TurnOrchestrator]


@dataclass
class ConversationSession:
    """A conversation and the orchestrator that owns its turns."""

    session_id: str
    store: ConversationStore
    orchestrator: TurnOrchestrator
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_activity: datetime = field(default_factory=lambda: datetime.now(UTC))

    def update_activity(self) -> None:
        """Update the last activity timestamp."""
        self.last_activity = datetime.now(UTC)

    def as_dict(self) -> dict[str, Any]:
        """Return the session and its conversation state as a dictionary."""
        return {
            "session_id": self.session_id,
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
            "turn_state": self.orchestrator.state.value,
            **self.store.as_dict(),
        }


class InMemorySessionManager:
    """In-memory registry of conversation sessions."""

    def __init__(
        self,
        orchestrator_factory: OrchestratorFactory,
        engine: InferenceEngine,
        default_model: str | None = None,
        planning_mode: bool = False,
        session_timeout_minutes: int = 60,
    ):
        """Initialize session manager.

        Args:
            orchestrator_factory: Builds the orchestrator for a new session's store
            engine: Inference engine shared by all sessions
            default_model: Model selected in new sessions
            planning_mode: Whether new sessions start with tools enabled
            session_timeout_minutes: Minutes before session expires
        """
        self.sessions: dict[str, ConversationSession] = {}
        self.orchestrator_factory = orchestrator_factory
        self.engine = engine
        self.default_model = default_model
        self.planning_mode = planning_mode
        self.session_timeout = timedelta(minutes=session_timeout_minutes)

    def create_session(self) -> ConversationSession:
        """Create a session with a fresh conversation."""
        self._cleanup_expired_sessions()

        store = ConversationStore(current_model=self.default_model, planning_mode=self.planning_mode)
        session = ConversationSession(
            session_id=self._generate_session_id(),
            store=store,
            orchestrator=self.orchestrator_factory(store),
        )
        self.sessions[session.session_id] = session
        logger.info(f"Created session {session.session_id} (model: {self.default_model})")
        return session

    def get_session(self, session_id: str) -> ConversationSession | None:
        """Get existing session by ID.

        Args:
            session_id: Session identifier

        Returns:
            Session if found and not expired, None otherwise
        """
        self._cleanup_expired_sessions()

        session = self.sessions.get(session_id)
        if session:
            session.update_activity()
        return session

    def delete_session(self, session_id: str) -> bool:
        """Delete a session.

        Args:
            session_id: Session identifier

        Returns:
            True if session was deleted, False if not found
        """
        if session_id in self.sessions:
            del self.sessions[session_id]
            return True
        return False

    def _generate_session_id(self) -> str:
        """Generate a new CUID-based session ID."""
        return cuid()

    def _cleanup_expired_sessions(self) -> None:
        """Remove expired sessions from memory. Sessions mid-turn are kept."""
        current_time = datetime.now(UTC)
        expired_sessions = []

        for session_id, session in self.sessions.items():
            if session.orchestrator.is_busy:
                continue
            if current_time - session.last_activity > self.session_timeout:
                expired_sessions.append(session_id)

        for session_id in expired_sessions:
            logger.info(f"Expiring idle session {session_id}")
            del self.sessions[session_id]

    def get_session_count(self) -> int:
        """Get current number of active sessions."""
        self._cleanup_expired_sessions()
        return len(self.sessions)


_session_manager: InMemorySessionManager | None = None


def get_session_manager() -> InMemorySessionManager:
    """Get the global session manager, building it from settings on first use."""
    global _session_manager
    if _session_manager is None:
        settings = get_settings()
        engine = create_engine(settings)
        tools_registry = get_tools_registry(
            BrowserBridgeBackend(settings.tool_bridge_url, timeout=settings.tool_timeout_seconds)
        )
        estimator = create_token_estimator(settings.token_estimator)

        def build_orchestrator(store: ConversationStore) -> TurnOrchestrator:
            return TurnOrchestrator(
                store=store,
                engine=engine,
                tools_registry=tools_registry,
                estimator=estimator,
                max_tool_rounds=settings.max_tool_rounds,
            )

        _session_manager = InMemorySessionManager(
            orchestrator_factory=build_orchestrator,
            engine=engine,
            default_model=settings.default_model,
            planning_mode=settings.planning_mode,
            session_timeout_minutes=settings.session_timeout_minutes,
        )
    return _session_manager
