"""Short titles for the session list."""

import logging
from typing import Optional

from .llm import LLM
from .models import DEFAULT_TITLE

logger = logging.getLogger(__name__)

TITLE_PROMPT = (
    "Summarize the following message into a short, 3-5 word title for a chat "
    'history list. Do not use quotes. Message: "{message}"'
)


class TitleGenerator:
    """Summarizes a first message into a label, falling back to ``DEFAULT_TITLE``."""

    def __init__(self, llm: LLM, model: Optional[str] = None):
        self.llm = llm
        self.model = model or llm.title_model

    async def summarize(self, text: str) -> str:
        try:
            title = await self.llm.generate_text(
                self.model, TITLE_PROMPT.format(message=text)
            )
        except Exception:
            logger.exception("Failed to generate title")
            return DEFAULT_TITLE
        return (title or "").strip() or DEFAULT_TITLE
