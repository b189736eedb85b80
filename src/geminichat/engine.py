"""Streaming coordinator: drives one send from user message to folded reply."""

import asyncio
import logging
from typing import List, Optional, Set

from .handle import HandleSlot
from .models import MODEL_ROLE, USER_ROLE, Message
from .store import SessionStore, SettingsStore
from .titles import TitleGenerator

logger = logging.getLogger(__name__)

APOLOGY_MESSAGE = (
    "Sorry, something went wrong. Please check your API key or connection."
)


class Engine:
    """Folds a streamed reply into the Session Store.

    Every step runs on the caller's event loop. A send is never cancelled by
    navigation: if the user switches or deletes sessions meanwhile, the
    stream keeps writing to the session it started on (writes to a deleted
    session are no-ops).
    """

    def __init__(
        self,
        sessions: SessionStore,
        settings: SettingsStore,
        handles: HandleSlot,
        titles: TitleGenerator,
    ):
        self.sessions = sessions
        self.settings = settings
        self.handles = handles
        self.titles = titles
        self._background: Set[asyncio.Task] = set()

    async def send(self, session_id: str, text: str) -> None:
        """Sends ``text`` in ``session_id`` and streams the reply into it.

        Errors from the provider are logged and replaced by an apology
        message in the transcript; nothing is raised to the caller.
        """
        session = self.sessions.get(session_id)
        if session is None:
            logger.warning("Ignoring send to unknown session %s", session_id)
            return
        is_first_exchange = not session.messages

        self.sessions.append(session_id, Message(role=USER_ROLE, content=text))

        placeholder_id: Optional[str] = None
        fragments: List[str] = []
        try:
            handle = self.handles.obtain(self.settings.get(), session_id)
            async for fragment in handle.stream(text):
                if not fragment:
                    continue
                fragments.append(fragment)
                if placeholder_id is None:
                    placeholder = Message(role=MODEL_ROLE, content="")
                    self.sessions.append(session_id, placeholder)
                    placeholder_id = placeholder.id
                self.sessions.update_content(
                    session_id, placeholder_id, "".join(fragments)
                )
        except Exception:
            logger.exception("Generation failed for session %s", session_id)
            if placeholder_id is None:
                self.sessions.append(
                    session_id, Message(role=MODEL_ROLE, content=APOLOGY_MESSAGE)
                )
            else:
                self.sessions.update_content(
                    session_id, placeholder_id, APOLOGY_MESSAGE
                )
            return

        logger.info(
            "Streamed %d fragments into session %s", len(fragments), session_id
        )
        if is_first_exchange:
            self._schedule_title(session_id, text)

    def _schedule_title(self, session_id: str, text: str) -> None:
        task = asyncio.get_running_loop().create_task(self._retitle(session_id, text))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _retitle(self, session_id: str, text: str) -> None:
        title = await self.titles.summarize(text)
        if session_id not in self.sessions:
            logger.debug("Session %s deleted before its title arrived", session_id)
            return
        self.sessions.rename(session_id, title)

    async def drain(self) -> None:
        """Waits for outstanding background title updates."""
        pending = [t for t in self._background if not t.done()]
        while pending:
            await asyncio.gather(*pending, return_exceptions=True)
            pending = [t for t in self._background if not t.done()]
