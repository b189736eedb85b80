"""Unit tests for the streaming engine."""

import pytest
from geminichat.engine import APOLOGY_MESSAGE, Engine
from geminichat.handle import HandleSlot
from geminichat.models import DEFAULT_TITLE, MODEL_ROLE, USER_ROLE, AppSettings, Message
from geminichat.store import SessionStore, SettingsStore
from geminichat.titles import TitleGenerator


def build_engine(llm, storage):
    sessions = SessionStore(storage)
    settings = SettingsStore(storage)
    handles = HandleSlot(llm)
    engine = Engine(sessions, settings, handles, TitleGenerator(llm))
    return engine, sessions


class TestStreamingFold:
    @pytest.mark.asyncio
    async def test_fragments_fold_into_one_model_message(self, scripted_llm, memory_storage):
        engine, sessions = build_engine(scripted_llm, memory_storage)
        session_id = sessions.create()

        await engine.send(session_id, "Say hello")

        messages = sessions.get(session_id).messages
        assert [m.role for m in messages] == [USER_ROLE, MODEL_ROLE]
        assert messages[0].content == "Say hello"
        assert messages[1].content == "Hello world"

    @pytest.mark.asyncio
    async def test_each_update_is_the_cumulative_text(self, make_llm, memory_storage):
        llm = make_llm(fragments=["Hel", "lo", " world"])
        engine, sessions = build_engine(llm, memory_storage)
        session_id = sessions.create()

        seen = []
        original = sessions.update_content

        def record(sid, message_id, text):
            seen.append(text)
            return original(sid, message_id, text)

        sessions.update_content = record
        await engine.send(session_id, "hi")

        assert seen == ["Hel", "Hello", "Hello world"]

    @pytest.mark.asyncio
    async def test_empty_fragments_are_skipped(self, make_llm, memory_storage):
        llm = make_llm(fragments=[None, "", "Hi", None, "!"])
        engine, sessions = build_engine(llm, memory_storage)
        session_id = sessions.create()

        await engine.send(session_id, "hello")

        assert sessions.get(session_id).messages[-1].content == "Hi!"

    @pytest.mark.asyncio
    async def test_no_fragments_leaves_only_user_message(self, make_llm, memory_storage):
        llm = make_llm(fragments=[])
        engine, sessions = build_engine(llm, memory_storage)
        session_id = sessions.create()

        await engine.send(session_id, "hello")

        messages = sessions.get(session_id).messages
        assert [m.role for m in messages] == [USER_ROLE]

    @pytest.mark.asyncio
    async def test_user_message_is_appended_before_streaming(self, make_llm, memory_storage):
        llm = make_llm(fail_after=0)
        engine, sessions = build_engine(llm, memory_storage)
        session_id = sessions.create()

        await engine.send(session_id, "first")

        assert sessions.get(session_id).messages[0].content == "first"

    @pytest.mark.asyncio
    async def test_unknown_session_is_ignored(self, scripted_llm, memory_storage, caplog):
        engine, sessions = build_engine(scripted_llm, memory_storage)
        await engine.send("missing", "hello")
        assert scripted_llm.chats == []
        assert "unknown session" in caplog.text

    @pytest.mark.asyncio
    async def test_handle_uses_current_settings(self, scripted_llm, memory_storage):
        engine, sessions = build_engine(scripted_llm, memory_storage)
        engine.settings.set(AppSettings(model="gemini-3-pro-preview", system_instruction="Rhyme."))
        session_id = sessions.create()

        await engine.send(session_id, "hello")

        chat = scripted_llm.chats[-1]
        assert chat.model == "gemini-3-pro-preview"
        assert chat.system_instruction == "Rhyme."
        assert chat.sent == ["hello"]

    @pytest.mark.asyncio
    async def test_handle_reused_within_same_session(self, scripted_llm, memory_storage):
        engine, sessions = build_engine(scripted_llm, memory_storage)
        session_id = sessions.create()

        await engine.send(session_id, "one")
        await engine.send(session_id, "two")

        assert len(scripted_llm.chats) == 1
        assert scripted_llm.chats[0].sent == ["one", "two"]


class TestFailures:
    @pytest.mark.asyncio
    async def test_failure_before_first_fragment_appends_apology(self, make_llm, memory_storage, caplog):
        llm = make_llm(fail_after=0)
        engine, sessions = build_engine(llm, memory_storage)
        session_id = sessions.create()

        await engine.send(session_id, "hello")

        messages = sessions.get(session_id).messages
        assert [m.role for m in messages] == [USER_ROLE, MODEL_ROLE]
        assert messages[-1].content == APOLOGY_MESSAGE
        assert "Generation failed" in caplog.text

    @pytest.mark.asyncio
    async def test_mid_stream_failure_replaces_placeholder(self, make_llm, memory_storage):
        llm = make_llm(fragments=["Partial", " answer", " never"], fail_after=2)
        engine, sessions = build_engine(llm, memory_storage)
        session_id = sessions.create()

        await engine.send(session_id, "hello")

        messages = sessions.get(session_id).messages
        assert len(messages) == 2
        assert messages[-1].role == MODEL_ROLE
        assert messages[-1].content == APOLOGY_MESSAGE

    @pytest.mark.asyncio
    async def test_handle_creation_failure_is_contained(self, scripted_llm, memory_storage):
        def broken(model, system_instruction):
            raise ValueError("Missing key inputs argument!")

        scripted_llm.create_chat = broken
        engine, sessions = build_engine(scripted_llm, memory_storage)
        session_id = sessions.create()

        await engine.send(session_id, "hello")

        assert sessions.get(session_id).messages[-1].content == APOLOGY_MESSAGE

    @pytest.mark.asyncio
    async def test_failed_first_exchange_is_not_titled(self, make_llm, memory_storage):
        llm = make_llm(fail_after=0)
        engine, sessions = build_engine(llm, memory_storage)
        session_id = sessions.create()

        await engine.send(session_id, "hello")
        await engine.drain()

        assert llm.title_prompts == []
        assert sessions.get(session_id).title == DEFAULT_TITLE


class TestTitling:
    @pytest.mark.asyncio
    async def test_first_exchange_renames_session(self, scripted_llm, memory_storage):
        engine, sessions = build_engine(scripted_llm, memory_storage)
        session_id = sessions.create()

        await engine.send(session_id, "Say hello")
        await engine.drain()

        assert sessions.get(session_id).title == "Greeting Exchange"
        assert len(scripted_llm.title_prompts) == 1
        assert '"Say hello"' in scripted_llm.title_prompts[0]

    @pytest.mark.asyncio
    async def test_later_exchanges_never_rename(self, scripted_llm, memory_storage):
        engine, sessions = build_engine(scripted_llm, memory_storage)
        session_id = sessions.create()

        await engine.send(session_id, "first")
        await engine.drain()
        sessions.rename(session_id, "Manual title")

        await engine.send(session_id, "second")
        await engine.send(session_id, "third")
        await engine.drain()

        assert len(scripted_llm.title_prompts) == 1
        assert sessions.get(session_id).title == "Manual title"

    @pytest.mark.asyncio
    async def test_session_with_history_is_not_titled(self, scripted_llm, memory_storage):
        engine, sessions = build_engine(scripted_llm, memory_storage)
        session_id = sessions.create()
        sessions.append(session_id, Message(role=USER_ROLE, content="restored"))

        await engine.send(session_id, "hello")
        await engine.drain()

        assert scripted_llm.title_prompts == []

    @pytest.mark.asyncio
    async def test_title_for_deleted_session_is_dropped(self, scripted_llm, memory_storage):
        engine, sessions = build_engine(scripted_llm, memory_storage)
        session_id = sessions.create()

        await engine.send(session_id, "hello")
        # The title task is scheduled but has not run yet.
        sessions.delete(session_id)
        await engine.drain()

        assert session_id not in sessions
        assert len(scripted_llm.title_prompts) == 1

    @pytest.mark.asyncio
    async def test_title_failure_keeps_default(self, make_llm, memory_storage):
        llm = make_llm(title_error=RuntimeError("quota exceeded"))
        engine, sessions = build_engine(llm, memory_storage)
        session_id = sessions.create()

        await engine.send(session_id, "hello")
        await engine.drain()

        assert sessions.get(session_id).title == DEFAULT_TITLE
