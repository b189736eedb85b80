"""Lifecycle of the live model session handle.

The slot is in one of two explicit states: ``ABSENT`` or ``Bound(key,
handle)``. On every send the key derived from the current settings and the
target session is compared with the bound key; any difference, or an
explicit ``invalidate()``, means a brand new handle. A bound handle is never
mutated in place, only replaced, so switching context always forfeits the
provider's memory of earlier turns.
"""

import logging
from dataclasses import dataclass
from typing import Union

from .llm import LLM, ChatHandle
from .models import AppSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HandleKey:
    model: str
    system_instruction: str
    session_id: str

    @classmethod
    def derive(cls, settings: AppSettings, session_id: str) -> "HandleKey":
        return cls(settings.model, settings.system_instruction, session_id)


class _Absent:
    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


@dataclass(frozen=True)
class Bound:
    key: HandleKey
    handle: ChatHandle


HandleState = Union[_Absent, Bound]


class HandleSlot:
    """Holds at most one live ChatHandle."""

    def __init__(self, llm: LLM):
        self.llm = llm
        self.state: HandleState = ABSENT

    @property
    def is_bound(self) -> bool:
        return isinstance(self.state, Bound)

    def obtain(self, settings: AppSettings, session_id: str) -> ChatHandle:
        key = HandleKey.derive(settings, session_id)
        if isinstance(self.state, Bound) and self.state.key == key:
            return self.state.handle

        handle = self.llm.create_chat(
            model=settings.model, system_instruction=settings.system_instruction
        )
        self.state = Bound(key, handle)
        logger.debug("Bound new model session for %s (%s)", session_id, settings.model)
        return handle

    def invalidate(self) -> None:
        if self.is_bound:
            logger.debug("Discarding model session")
        self.state = ABSENT
