"""
Session store — maps web session ids to Conversation handles.

Owned by the web layer; the orchestrator never sees session ids.
Bounded: when max_sessions is reached the least recently used session
is dropped.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from uuid import uuid4

from toolchat.conversation import Conversation

logger = logging.getLogger(__name__)


class SessionStore:
    """In-process session id -> Conversation map with LRU eviction."""

    def __init__(self, max_sessions: int = 1000, system_prompt: str = ""):
        self.max_sessions = max_sessions
        self.system_prompt = system_prompt
        self._sessions: OrderedDict[str, Conversation] = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def new_id() -> str:
        return uuid4().hex

    def get_or_create(self, session_id: str | None) -> tuple[str, Conversation]:
        """Return (session_id, conversation), creating both if needed."""
        with self._lock:
            if session_id and session_id in self._sessions:
                self._sessions.move_to_end(session_id)
                return session_id, self._sessions[session_id]

            session_id = session_id or self.new_id()
            conversation = Conversation(system_prompt=self.system_prompt, conversation_id=session_id)
            self._sessions[session_id] = conversation
            while len(self._sessions) > self.max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.debug("Session %s evicted (LRU)", evicted)
            return session_id, conversation

    def reset(self, session_id: str | None) -> bool:
        """Drop a session. Returns True if it existed."""
        if not session_id:
            return False
        with self._lock:
            existed = self._sessions.pop(session_id, None) is not None
        if existed:
            logger.info("Session %s reset", session_id)
        return existed

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
