"""In-memory state containers mirrored to durable storage.

Both stores hold the authoritative state in memory and re-serialize the full
record on every mutation. Storage failures are logged and never propagate:
the in-memory state stays authoritative for the rest of the process.
"""

import logging
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError

from .models import (
    AppSettings,
    ChatSession,
    Message,
    dump_sessions,
    load_sessions,
    utcnow,
)
from .storage import SESSIONS_KEY, SETTINGS_KEY, Storage

logger = logging.getLogger(__name__)


class SessionStore:
    """Ordered collection of chat sessions, newest first."""

    def __init__(self, storage: Storage):
        self._storage = storage
        self._sessions: List[ChatSession] = self._load()
        self._index: Dict[str, ChatSession] = {s.id: s for s in self._sessions}
        self.revision = 0

    def _load(self) -> List[ChatSession]:
        try:
            data = self._storage.read(SESSIONS_KEY)
        except Exception:
            logger.exception("Failed to read saved sessions; starting empty")
            return []
        if not data:
            return []
        try:
            sessions = load_sessions(data)
        except ValidationError:
            logger.exception("Failed to parse saved sessions; starting empty")
            return []

        # Drop duplicate ids from hand-edited or corrupted records.
        seen = set()
        unique = []
        for session in sessions:
            if session.id in seen:
                logger.warning("Dropping duplicate saved session %s", session.id)
                continue
            seen.add(session.id)
            unique.append(session)
        return unique

    def _persist(self) -> None:
        self.revision += 1
        try:
            self._storage.write(SESSIONS_KEY, dump_sessions(self._sessions))
        except Exception:
            logger.exception("Failed to save sessions")

    @staticmethod
    def _touch(session: ChatSession) -> None:
        session.last_updated = max(session.last_updated, utcnow())

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._index

    def __len__(self) -> int:
        return len(self._sessions)

    def list(self) -> List[ChatSession]:
        return list(self._sessions)

    def sorted_by_activity(self) -> List[ChatSession]:
        return sorted(self._sessions, key=lambda s: s.last_updated, reverse=True)

    def get(self, session_id: Optional[str]) -> Optional[ChatSession]:
        if session_id is None:
            return None
        return self._index.get(session_id)

    def create(self) -> str:
        session = ChatSession()
        while session.id in self._index:
            session = ChatSession()
        self._sessions.insert(0, session)
        self._index[session.id] = session
        self._persist()
        return session.id

    def append(self, session_id: str, message: Message) -> bool:
        session = self._index.get(session_id)
        if session is None:
            return False
        session.messages.append(message)
        self._touch(session)
        self._persist()
        return True

    def update_content(self, session_id: str, message_id: str, text: str) -> bool:
        """Overwrites the content of one message."""
        session = self._index.get(session_id)
        if session is None:
            return False
        message = session.find_message(message_id)
        if message is None:
            return False
        message.content = text
        self._touch(session)
        self._persist()
        return True

    def rename(self, session_id: str, title: str) -> bool:
        session = self._index.get(session_id)
        if session is None:
            return False
        session.title = title
        self._persist()
        return True

    def delete(self, session_id: str) -> bool:
        session = self._index.pop(session_id, None)
        if session is None:
            return False
        self._sessions.remove(session)
        self._persist()
        return True


class SettingsStore:
    """Holds the single AppSettings record and notifies subscribers on change."""

    def __init__(self, storage: Storage, default: Optional[AppSettings] = None):
        self._storage = storage
        self._default = default if default is not None else AppSettings()
        self._settings = self._load()
        self._subscribers: List[Callable[[AppSettings], None]] = []

    def _load(self) -> AppSettings:
        try:
            data = self._storage.read(SETTINGS_KEY)
        except Exception:
            logger.exception("Failed to read saved settings; using defaults")
            return self._default.model_copy()
        if not data:
            return self._default.model_copy()
        try:
            return AppSettings.model_validate_json(data)
        except ValidationError:
            logger.exception("Failed to parse saved settings; using defaults")
            return self._default.model_copy()

    def get(self) -> AppSettings:
        return self._settings.model_copy()

    def set(self, settings: AppSettings) -> None:
        self._settings = settings.model_copy()
        try:
            self._storage.write(
                SETTINGS_KEY, self._settings.model_dump_json(by_alias=True)
            )
        except Exception:
            logger.exception("Failed to save settings")
        for callback in list(self._subscribers):
            callback(self.get())

    def subscribe(self, callback: Callable[[AppSettings], None]) -> None:
        self._subscribers.append(callback)
