"""Concrete implementations for LLM providers."""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from .models import ModelIds

logger = logging.getLogger(__name__)


class ChatHandle(ABC):
    """A live, stateful conversation context on the provider's side.

    A handle is bound to one (model, system instruction) pair for its whole
    life. It remembers the turns sent through it and cannot be retargeted.
    """

    @abstractmethod
    def stream(self, message: str) -> AsyncIterator[str]:
        """Sends ``message`` and yields the reply as incremental text fragments.

        The returned iterator is lazy, finite and can be consumed only once.
        """
        pass


class LLM(ABC):
    """Abstract Base Class for all LLM providers."""

    title_model: str = ModelIds.FLASH.value

    @abstractmethod
    def create_chat(self, model: str, system_instruction: str) -> ChatHandle:
        """Creates a new conversation context.

        Parameters
        ----------
        model : str
            The model identifier. It is passed through unvalidated; an
            unknown model fails only when the provider rejects it.
        system_instruction : str
            Persona/behavior text applied to every turn of the conversation.

        Returns
        -------
        ChatHandle
            A fresh handle with no prior turns.
        """
        pass

    @abstractmethod
    async def generate_text(self, model: str, prompt: str) -> str:
        """Runs a single, non-streaming completion and returns its text."""
        pass

    def models(self) -> List[Tuple[str, str]]:
        """Returns the selectable ``(model_id, label)`` pairs."""
        return [(m.value, m.label) for m in ModelIds]


class _GeminiChat(ChatHandle):
    def __init__(self, chat):
        self._chat = chat

    async def stream(self, message: str) -> AsyncIterator[str]:
        response = await self._chat.send_message_stream(message)
        async for chunk in response:
            yield chunk.text


class Gemini(LLM):
    """Google Gemini through the ``google-genai`` SDK's async client.

    The client is built on first use, so a missing API key is reported at
    startup but only fails the first request that needs it.
    """

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or os.environ.get("GEMINI_API_KEY")
        if not self.api_key:
            logger.error("GEMINI_API_KEY is missing from environment variables.")
        self._client = None

    @property
    def client(self):
        if self._client is None:
            from google import genai

            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def create_chat(self, model: str, system_instruction: str) -> ChatHandle:
        from google.genai import types

        chat = self.client.aio.chats.create(
            model=model,
            config=types.GenerateContentConfig(system_instruction=system_instruction),
        )
        return _GeminiChat(chat)

    async def generate_text(self, model: str, prompt: str) -> str:
        response = await self.client.aio.models.generate_content(
            model=model, contents=prompt
        )
        return response.text or ""


class _OpenAIChat(ChatHandle):
    def __init__(self, client, model: str, system_instruction: str):
        self._client = client
        self._model = model
        self._history: List[Dict[str, Any]] = []
        if system_instruction:
            self._history.append({"role": "system", "content": system_instruction})

    async def stream(self, message: str) -> AsyncIterator[str]:
        messages = self._history + [{"role": "user", "content": message}]
        stream = await self._client.chat.completions.create(
            model=self._model, messages=messages, stream=True
        )
        reply = []
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                reply.append(delta)
                yield delta
        # Only completed turns become part of the context.
        self._history = messages + [{"role": "assistant", "content": "".join(reply)}]


class OpenAI(LLM):
    """OpenAI chat completions through the ``openai`` SDK's async client.

    The provider has no server-side chat object, so each handle keeps the
    running message list itself.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        default_model: str = "gpt-4o",
        title_model: str = "gpt-4o-mini",
    ):
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not self.api_key:
            logger.error("OPENAI_API_KEY is missing from environment variables.")
        self.model = default_model
        self.title_model = title_model
        self._client = None

    @property
    def client(self):
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    def models(self) -> List[Tuple[str, str]]:
        return [(self.model, self.model), (self.title_model, self.title_model)]

    def create_chat(self, model: str, system_instruction: str) -> ChatHandle:
        return _OpenAIChat(self.client, model, system_instruction)

    async def generate_text(self, model: str, prompt: str) -> str:
        response = await self.client.chat.completions.create(
            model=model, messages=[{"role": "user", "content": prompt}]
        )
        return response.choices[0].message.content or ""


class _EchoChat(ChatHandle):
    def __init__(self, model: str, delay: float):
        self._model = model
        self._delay = delay
        self.turns: List[str] = []

    async def stream(self, message: str) -> AsyncIterator[str]:
        self.turns.append(message)
        content = (
            f"**Echo LLM ({self._model}) - static response for testing**\n\n"
            f"_Your prompt:_\n\n{message}"
        )
        words = content.split(" ")
        for i, word in enumerate(words):
            await asyncio.sleep(self._delay)
            yield word if i == 0 else " " + word


class Echo(LLM):
    """Offline provider that streams the prompt back word by word."""

    def __init__(self, delay: float = 0.05):
        self.delay = delay

    def create_chat(self, model: str, system_instruction: str) -> ChatHandle:
        return _EchoChat(model, self.delay)

    async def generate_text(self, model: str, prompt: str) -> str:
        await asyncio.sleep(self.delay)
        # The prompt template quotes the message last.
        message = prompt.rsplit("Message:", 1)[-1].strip().strip('"')
        return " ".join(message.split()[:5])
