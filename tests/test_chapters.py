"""
Tests for session storage and the chapter profiles.
"""

import pytest

from stubs import ScriptedBackend, text_response, tool_response
from toolchat.chapters import CHAPTERS, ChapterService
from toolchat.models import ReturnMode, TurnOptions
from toolchat.sessions import SessionStore

CFG = {
    "tools": {
        "datetime": {"enabled": True},
        "geocoding": {"enabled": True},
        "weather": {"enabled": True},
        "document_search": {"enabled": False},
        "prompts": {"enabled": False},
    },
    "orchestrator": {"max_tool_rounds": 3, "system_prompt": "You are helpful."},
    "sessions": {"max_sessions": 2},
}


def _service(*responses):
    backend = ScriptedBackend(list(responses))
    return ChapterService.from_config(CFG, backend), backend


# ---------------------------------------------------------------------------
# SessionStore
# ---------------------------------------------------------------------------

class TestSessionStore:
    def test_creates_and_reuses(self):
        store = SessionStore()
        sid, conv = store.get_or_create(None)
        again_sid, again = store.get_or_create(sid)
        assert again_sid == sid
        assert again is conv
        assert conv.id == sid

    def test_unknown_id_is_adopted(self):
        store = SessionStore()
        sid, _ = store.get_or_create("from-cookie")
        assert sid == "from-cookie"
        assert "from-cookie" in store

    def test_lru_eviction(self):
        store = SessionStore(max_sessions=2)
        store.get_or_create("a")
        store.get_or_create("b")
        store.get_or_create("a")    # touch a
        store.get_or_create("c")
        assert "a" in store and "c" in store
        assert "b" not in store
        assert len(store) == 2

    def test_reset(self):
        store = SessionStore(system_prompt="sys")
        sid, conv = store.get_or_create(None)
        assert conv.messages[0].content == "sys"
        assert store.reset(sid)
        assert not store.reset(sid)
        assert not store.reset(None)


# ---------------------------------------------------------------------------
# Chapters
# ---------------------------------------------------------------------------

class TestChapters:
    def test_profiles(self):
        service, _ = _service(text_response("x"))
        assert service.registry("chapter2").list_tools() == []
        assert "forecast" in service.registry("chapter3")
        assert "coordinates_of" in service.registry("chat")
        assert CHAPTERS["chapter2"].session_scoped
        assert not CHAPTERS["chapter3"].session_scoped

    def test_unknown_chapter(self):
        service, _ = _service(text_response("x"))
        with pytest.raises(KeyError):
            service.registry("chapter9")

    @pytest.mark.asyncio
    async def test_session_chapter_keeps_history(self):
        service, backend = _service(text_response("one"), text_response("two"))

        sid, first = await service.send("chapter2", "hello")
        sid2, second = await service.send("chapter2", "again", sid)

        assert sid2 == sid
        assert (first.final_text, second.final_text) == ("one", "two")
        sent = [m["content"] for m in backend.calls[1]["messages"]]
        assert sent == ["You are helpful.", "hello", "one", "again"]

    @pytest.mark.asyncio
    async def test_stateless_chapter_starts_fresh(self):
        service, backend = _service(text_response("one"), text_response("two"))

        sid, _ = await service.send("chapter3", "hello")
        await service.send("chapter3", "again")

        assert sid is None
        assert len(backend.calls[1]["messages"]) == 2
        assert len(service.sessions) == 0

    @pytest.mark.asyncio
    async def test_chapter3_resolves_datetime_tool(self):
        service, _ = _service(
            tool_response(("year_of", {"date": "2024-03-15"}, "c1")),
            text_response("It is 2024."),
        )
        _, result = await service.send("chapter3", "Which year?")
        assert result.final_text == "It is 2024."

    @pytest.mark.asyncio
    async def test_sk_chat_returns_full_history(self):
        service, backend = _service(
            tool_response(("month_of", {"date": "2024-03-15"}, "c1")),
            text_response("March."),
        )

        result = await service.sk_chat(["I travel on 2024-03-15.", "Which month is that?"])

        assert [m.role for m in result.history] == ["user", "user", "assistant", "tool", "assistant"]
        assert result.history[3].content == "MARCH"
        assert result.history[-1].content == "March."
        assert len(service.sessions) == 0

    @pytest.mark.asyncio
    async def test_sk_chat_needs_messages(self):
        service, _ = _service(text_response("x"))
        with pytest.raises(ValueError):
            await service.sk_chat([])

    @pytest.mark.asyncio
    async def test_sk_chat_keeps_service_options(self):
        service, backend = _service(tool_response(("current_date", {}, "c1")))
        service.options = TurnOptions(max_tool_rounds=3, resolve_tools=False, per_tool_timeout=2.5)

        result = await service.sk_chat(["What is the date?"])

        assert len(backend.calls) == 1
        assert [c.tool_name for c in result.pending_tool_calls] == ["current_date"]
        assert [m.role for m in result.history] == ["user", "assistant"]
        assert service.options.return_mode is ReturnMode.LAST_MESSAGE_ONLY
