"""Environment-driven configuration and logging setup."""

import logging
import os
from pathlib import Path
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, field_validator

PROVIDERS = ("gemini", "openai", "echo")
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class Config(BaseModel):
    """Runtime settings for the server process.

    These are deployment concerns. The user-editable chat settings (model,
    system instruction) live in ``models.AppSettings`` and are persisted by
    the Settings Store instead.
    """

    provider: Literal["gemini", "openai", "echo"] = "gemini"
    data_dir: Path = Path("~/.geminichat")
    log_level: str = "INFO"
    api_key: Optional[str] = None

    @field_validator("provider", mode="before")
    @classmethod
    def _normalize_provider(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        environ = os.environ if environ is None else environ
        values = {
            "provider": environ.get("GEMINICHAT_PROVIDER"),
            "data_dir": environ.get("GEMINICHAT_DATA_DIR"),
            "log_level": environ.get("GEMINICHAT_LOG_LEVEL"),
            "api_key": environ.get("GEMINI_API_KEY"),
        }
        return cls(**{k: v for k, v in values.items() if v})

    def build_llm(self):
        from . import llm

        if self.provider == "openai":
            return llm.OpenAI()
        if self.provider == "echo":
            return llm.Echo()
        return llm.Gemini(api_key=self.api_key)

    def build_storage(self):
        from .storage import File

        return File(str(self.data_dir.expanduser()))


def configure_logging(level: str = "INFO") -> None:
    """Installs one stream handler on the ``geminichat`` logger."""
    package_logger = logging.getLogger("geminichat")
    package_logger.setLevel(level)
    if not any(getattr(h, "_geminichat", False) for h in package_logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._geminichat = True
        package_logger.addHandler(handler)
