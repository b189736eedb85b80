"""
Defines the core Pydantic data models for the application.

These models are the data contract between the stores, the engine and the
presentation layer. They serialize with camelCase aliases so persisted records
keep the same shape as the browser client's local storage.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

# --- Constants ---
USER_ROLE = "user"
MODEL_ROLE = "model"
Role = Literal[USER_ROLE, MODEL_ROLE]

DEFAULT_TITLE = "New Chat"
DEFAULT_SYSTEM_INSTRUCTION = (
    "You are a helpful and intelligent AI assistant powered by Google's Gemini "
    "models. Be concise, accurate, and use Markdown for formatting."
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class ModelIds(str, Enum):
    """Selectable model identifiers and their display labels."""

    FLASH = "gemini-3-flash-preview"
    PRO = "gemini-3-pro-preview"

    @property
    def label(self) -> str:
        return _MODEL_LABELS[self]


_MODEL_LABELS = {
    ModelIds.FLASH: "Gemini 3.0 Flash (Fast & Efficient)",
    ModelIds.PRO: "Gemini 3.0 Pro (Complex Reasoning)",
}


# --- Models ---
class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Message(_Record):
    """Represents a single turn within a chat session."""

    role: Role
    content: str = ""
    id: str = Field(default_factory=new_id)
    timestamp: datetime = Field(default_factory=utcnow)


class ChatSession(_Record):
    """Represents one persisted conversation."""

    id: str = Field(default_factory=new_id)
    title: str = DEFAULT_TITLE
    messages: List[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    last_updated: datetime = Field(default_factory=utcnow)

    def find_message(self, message_id: str):
        return next((m for m in self.messages if m.id == message_id), None)


class AppSettings(_Record):
    """The single, process-wide configuration record."""

    system_instruction: str = DEFAULT_SYSTEM_INSTRUCTION
    model: str = ModelIds.FLASH.value


_SESSIONS_ADAPTER = TypeAdapter(List[ChatSession])


def dump_sessions(sessions: List[ChatSession]) -> str:
    """Serializes an ordered session list into its persisted JSON form."""
    return _SESSIONS_ADAPTER.dump_json(sessions, by_alias=True).decode("utf-8")


def load_sessions(data: str) -> List[ChatSession]:
    """Parses a persisted session list.

    Raises
    ------
    pydantic.ValidationError
        If the data is not valid JSON or does not match the schema.
    """
    return _SESSIONS_ADAPTER.validate_json(data)
