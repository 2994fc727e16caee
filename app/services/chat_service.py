"""
CHAT SERVICE MODULE
===================

Owns the conversations. A session belongs to one project and holds an
append-only list of ChatTurns in creation order. For each user message:

  Composed       user turn created and appended
  Sent           ruleset snapshot read, instruction and bounded history built
  AwaitingReply  generation backend called
  Replied        agent turn appended
  Failed         backend error: a synthesized agent turn with CHAT_FAILURE_MESSAGE
                 is appended instead. Terminal, never retried here.

Only one message per session may be waiting for a reply at a time; a second send
raises ConversationBusyError. Sessions live in memory for the life of the process.
"""

import logging
import re
import threading
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional

from app.errors import (
    BackendUnavailableError,
    ConversationBusyError,
    SessionNotFoundError,
    TurnNotFoundError,
)
from app.models import AgentRole, ChatTurn, Sender, TurnState
from app.services.prompt_composer import build_history, build_system_instruction, resolve_role
from app.services.stores import ProjectStore
from app.utils.time_info import next_turn_id, now
from config import CHAT_FAILURE_MESSAGE, MAX_CHAT_HISTORY_TURNS

logger = logging.getLogger("Workiwi")

_SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class ChatSession:
    """One conversation: project id plus ordered turns."""

    def __init__(self, session_id: str, project_id: int):
        self.id = session_id
        self.project_id = project_id
        self.turns: List[ChatTurn] = []


@dataclass
class ChatExchange:
    """Result of one send: the user turn, the agent turn that answered it, and the final state."""
    session_id: str
    user_turn: ChatTurn
    reply_turn: ChatTurn
    state: TurnState
    error: Optional[BackendUnavailableError] = None


def validate_session_id(session_id: str) -> str:
    """Reject ids that are empty, too long, or contain anything but letters, digits, - and _."""
    if not _SESSION_ID_PATTERN.match(session_id or ""):
        raise ValueError("Invalid session_id: use 1-128 letters, digits, '-' or '_'")
    return session_id


class ChatService:
    """Runs conversations against a generation backend using the rulesets in a ProjectStore."""

    def __init__(self, backend, project_store: ProjectStore, history_window: int = MAX_CHAT_HISTORY_TURNS):
        self.backend = backend
        self.project_store = project_store
        self.history_window = history_window
        self.sessions: Dict[str, ChatSession] = {}
        self._in_flight = set()
        self._lock = threading.Lock()

    # --------------------------------------------------------------------------
    # SESSIONS
    # --------------------------------------------------------------------------

    def get_or_create_session(self, session_id: Optional[str], project_id: int) -> str:
        """
        Return the id of an existing session or create one for project_id.
        A new UUID is generated when session_id is None. Raises ProjectNotFoundError
        for unknown projects and ValueError for bad ids or a project mismatch.
        """
        self.project_store.get(project_id)
        if session_id is None:
            session_id = str(uuid.uuid4())
        validate_session_id(session_id)
        with self._lock:
            session = self.sessions.get(session_id)
            if session is None:
                self.sessions[session_id] = ChatSession(session_id, project_id)
                logger.info("New chat session %s for project %s", session_id, project_id)
            elif session.project_id != project_id:
                raise ValueError(f"Session {session_id} belongs to project {session.project_id}")
        return session_id

    def get_session(self, session_id: str) -> ChatSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return session

    def get_chat_history(self, session_id: str) -> List[ChatTurn]:
        return list(self.get_session(session_id).turns)

    def get_turn(self, session_id: str, turn_id: int) -> ChatTurn:
        for turn in self.get_session(session_id).turns:
            if turn.id == turn_id:
                return turn
        raise TurnNotFoundError(f"Turn {turn_id} not found in session {session_id}")

    # --------------------------------------------------------------------------
    # SEND
    # --------------------------------------------------------------------------

    def _agent_turn(self, text: str, role: Optional[AgentRole]) -> ChatTurn:
        return ChatTurn(id=next_turn_id(), sender=Sender.AGENT, text=text, agent_role=role, timestamp=now())

    def process_message(self, session_id: str, message: str, role, prior_turns=None) -> ChatExchange:
        """
        Send one user message and record the reply.

        prior_turns replaces the session's recorded turns as the source of history
        (the web client keeps its own conversation); anything with sender and text
        works. The session still records the new turns.

        Returns a Replied exchange, or a Failed one (with error set) when the backend
        fails. Raises ConversationBusyError if the session already has a message
        waiting, and ProjectNotFoundError if the session's project was removed.
        """
        session = self.get_session(session_id)
        with self._lock:
            if session_id in self._in_flight:
                raise ConversationBusyError(f"Session {session_id} is still waiting for a reply")
            self._in_flight.add(session_id)

        try:
            ruleset = self.project_store.get_ruleset(session.project_id)
            agent_role = resolve_role(role)
            if prior_turns is None:
                prior_turns = session.turns
            prior_turns = list(prior_turns)

            user_turn = ChatTurn(id=next_turn_id(), sender=Sender.USER, text=message, timestamp=now())
            session.turns.append(user_turn)
            logger.debug("Turn %s %s", user_turn.id, TurnState.COMPOSED.value)

            system_instruction = build_system_instruction(ruleset, role)
            history = build_history(prior_turns, self.history_window)
            logger.debug("Turn %s %s with %s history entries", user_turn.id, TurnState.SENT.value, len(history))

            logger.info("Turn %s %s (session %s, role %s)", user_turn.id,
                        TurnState.AWAITING_REPLY.value, session_id, role)
            try:
                reply_text = self.backend.generate(system_instruction, history, message)
            except Exception as e:
                error = e if isinstance(e, BackendUnavailableError) else BackendUnavailableError(str(e), cause=e)
                failed_turn = self._agent_turn(CHAT_FAILURE_MESSAGE, agent_role)
                session.turns.append(failed_turn)
                logger.error("Turn %s %s: %s", user_turn.id, TurnState.FAILED.value, e, exc_info=True)
                return ChatExchange(session_id, user_turn, failed_turn, TurnState.FAILED, error)

            reply_turn = self._agent_turn(reply_text, agent_role)
            session.turns.append(reply_turn)
            logger.info("Turn %s %s", user_turn.id, TurnState.REPLIED.value)
            return ChatExchange(session_id, user_turn, reply_turn, TurnState.REPLIED)
        finally:
            with self._lock:
                self._in_flight.discard(session_id)
