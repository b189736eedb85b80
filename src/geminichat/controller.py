"""The top-level application controller.

``ChatController`` owns every piece of mutable state: both stores, the
active-session pointer, the model session handle and the engine. The
presentation layer only talks to it, and only from the event loop thread
(see ``runner.LoopRunner``).
"""

import asyncio
import logging
from typing import Dict, Optional

from .engine import Engine
from .handle import HandleSlot
from .llm import LLM
from .models import AppSettings, ChatSession
from .storage import Storage
from .store import SessionStore, SettingsStore
from .titles import TitleGenerator

logger = logging.getLogger(__name__)


def default_settings(llm: LLM) -> AppSettings:
    """Settings used until the user saves their own: the provider's first model."""
    models = llm.models()
    if not models:
        return AppSettings()
    return AppSettings(model=models[0][0])


class ChatController:
    def __init__(self, llm: LLM, storage: Storage):
        self.llm = llm
        self.sessions = SessionStore(storage)
        self.settings = SettingsStore(storage, default=default_settings(llm))
        self.handles = HandleSlot(llm)
        self.titles = TitleGenerator(llm)
        self.engine = Engine(self.sessions, self.settings, self.handles, self.titles)
        self.active_session_id: Optional[str] = None
        self._streams: Dict[str, asyncio.Task] = {}
        self._changes = 0

        self.settings.subscribe(self._on_settings_changed)

    @property
    def revision(self) -> int:
        """Increases whenever anything the UI renders has changed."""
        return self.sessions.revision + self._changes

    def _changed(self) -> None:
        self._changes += 1

    def _on_settings_changed(self, settings: AppSettings) -> None:
        logger.info("Settings changed (model=%s)", settings.model)
        self.handles.invalidate()
        self._changed()

    def active_session(self) -> Optional[ChatSession]:
        return self.sessions.get(self.active_session_id)

    def new_chat(self) -> str:
        session_id = self.sessions.create()
        self.active_session_id = session_id
        self.handles.invalidate()
        self._changed()
        return session_id

    def select(self, session_id: str) -> bool:
        if session_id not in self.sessions:
            return False
        self.active_session_id = session_id
        self.handles.invalidate()
        self._changed()
        return True

    def delete(self, session_id: str) -> bool:
        if not self.sessions.delete(session_id):
            return False
        if self.active_session_id == session_id:
            self.active_session_id = None
            self.handles.invalidate()
        self._changed()
        return True

    def save_settings(self, settings: AppSettings) -> None:
        self.settings.set(settings)

    def is_streaming(self, session_id: Optional[str] = None) -> bool:
        session_id = session_id or self.active_session_id
        return session_id is not None and session_id in self._streams

    def start_send(self, text: str) -> Optional[asyncio.Task]:
        """Starts streaming a reply to ``text`` in the active session.

        Must be called on the running event loop. Creates and activates a
        new session first when none is active. Returns ``None`` without
        sending when the text is blank or the session is already streaming.
        """
        text = (text or "").strip()
        if not text:
            return None
        if self.active_session() is None:
            self.new_chat()
        session_id = self.active_session_id
        if self.is_streaming(session_id):
            logger.info("Ignoring send while session %s is streaming", session_id)
            return None

        task = asyncio.get_running_loop().create_task(
            self.engine.send(session_id, text)
        )
        self._streams[session_id] = task
        self._changed()

        def _finished(done: asyncio.Task) -> None:
            if self._streams.get(session_id) is done:
                del self._streams[session_id]
            self._changed()

        task.add_done_callback(_finished)
        return task

    async def send(self, text: str) -> None:
        task = self.start_send(text)
        if task is not None:
            await task
