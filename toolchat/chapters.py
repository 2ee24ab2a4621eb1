"""
Chapters — the tutorial's progressively richer tool profiles.

    chapter2   plain chat, history kept per session
    chapter3   + date/time, geocoding and weather tools (stateless)
    chapter4   + document search (stateless)
    chapter5   prompt tools only (stateless)
    chat       every tool, history kept per session
    skchat     every tool, stateless, full history returned

Each chapter gets its own registry, built once at startup.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from toolchat.conversation import Conversation
from toolchat.models import Message, ReturnMode, TurnOptions, TurnResult
from toolchat.orchestrator import ConversationOrchestrator
from toolchat.sessions import SessionStore
from toolchat.tools.registry import TOOL_FAMILIES, ToolRegistry, build_registry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Chapter:
    name: str
    tool_families: tuple[str, ...]
    session_scoped: bool
    description: str = ""


CHAPTERS: dict[str, Chapter] = {
    c.name: c
    for c in (
        Chapter("chapter2", (), True, "Plain chat with session history"),
        Chapter("chapter3", ("datetime", "geocoding", "weather"), False,
                "Date/time, geocoding and weather tools"),
        Chapter("chapter4", ("datetime", "geocoding", "weather", "document_search"), False,
                "Chapter 3 plus document search"),
        Chapter("chapter5", ("prompts",), False, "Prompt tools"),
        Chapter("chat", TOOL_FAMILIES, True, "Every tool with session history"),
        Chapter("skchat", TOOL_FAMILIES, False, "Every tool, full history"),
    )
}


class ChapterService:
    """Routes a message to a chapter's registry and session policy."""

    def __init__(
        self,
        orchestrator: ConversationOrchestrator,
        registries: dict[str, ToolRegistry],
        sessions: SessionStore,
        options: TurnOptions | None = None,
        system_prompt: str = "",
    ):
        self.orchestrator = orchestrator
        self.registries = registries
        self.sessions = sessions
        self.options = options or orchestrator.default_options
        self.system_prompt = system_prompt

    @classmethod
    def from_config(cls, cfg: dict, backend, vector_store=None, sessions: SessionStore | None = None) -> ChapterService:
        options = TurnOptions.from_config(cfg)
        system_prompt = cfg.get("orchestrator", {}).get("system_prompt", "")
        registries = {
            name: build_registry(cfg, vector_store=vector_store, backend=backend, include=chapter.tool_families)
            for name, chapter in CHAPTERS.items()
        }
        if sessions is None:
            sessions_cfg = cfg.get("sessions", {})
            sessions = SessionStore(
                max_sessions=sessions_cfg.get("max_sessions", 1000),
                system_prompt=system_prompt,
            )
        return cls(
            ConversationOrchestrator(backend, options),
            registries,
            sessions,
            options,
            system_prompt=system_prompt,
        )

    def registry(self, chapter: str) -> ToolRegistry:
        if chapter not in CHAPTERS:
            raise KeyError(f"Unknown chapter: {chapter}")
        return self.registries[chapter]

    async def send(self, chapter: str, message: str, session_id: str | None = None) -> tuple[str | None, TurnResult]:
        """
        Run one turn for a chapter. Session-scoped chapters reuse (or create)
        the session's conversation; the others start fresh every call.
        Returns (session_id or None, result).
        """
        registry = self.registry(chapter)
        if CHAPTERS[chapter].session_scoped:
            session_id, conversation = self.sessions.get_or_create(session_id)
        else:
            session_id, conversation = None, Conversation(system_prompt=self.system_prompt)

        logger.debug("%s: message on %s", chapter, conversation.id)
        result = await self.orchestrator.turn(conversation, message, registry, self.options)
        return session_id, result

    async def sk_chat(self, messages: list[str]) -> TurnResult:
        """
        Stateless turn over several user messages; every tool; full history.
        Earlier messages become context, the last one drives the turn.
        """
        if not messages:
            raise ValueError("At least one message is required")

        conversation = Conversation(system_prompt=self.system_prompt)
        conversation.extend([Message.user(m) for m in messages[:-1]])
        options = replace(self.options, return_mode=ReturnMode.FULL_HISTORY)
        result = await self.orchestrator.turn(conversation, messages[-1], self.registry("skchat"), options)
        # Full history of the whole request, not only the turn
        result.history = [m for m in conversation.messages if m.role != "system"]
        return result
