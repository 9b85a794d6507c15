"""Explicit configuration for the conversation agent and the store."""

import os
from typing import Optional

import pydantic
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .errors import ConfigurationError

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-5-20250929"


class AgentConfig(BaseModel):
    """Settings handed to provider selection and the store.

    Attributes:
        openai_api_key: Credential for provider A (OpenAI).
        anthropic_api_key: Credential for provider B (Anthropic).
        openai_model: Chat model used when OpenAI is selected.
        anthropic_model: Chat model used when Anthropic is selected.
        request_timeout: Seconds before a provider call is abandoned.
        history_limit: Number of prior turns sent with each call.
        target_language: Language being learned.
        translation_language: Language translations are given in.
        database_path: DuckDB file path, or ":memory:".
    """

    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    anthropic_api_key: Optional[str] = Field(
        default=None, description="Anthropic API key"
    )
    openai_model: str = Field(default=DEFAULT_OPENAI_MODEL)
    anthropic_model: str = Field(default=DEFAULT_ANTHROPIC_MODEL)
    request_timeout: float = Field(default=30.0, gt=0)
    history_limit: int = Field(default=20, ge=0)
    target_language: str = Field(default="Italian")
    translation_language: str = Field(default="English")
    database_path: str = Field(default=":memory:")

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "AgentConfig":
        """Builds a config from environment variables, optionally loading .env first."""
        if dotenv:
            load_dotenv()

        values = {
            "openai_api_key": os.getenv("OPENAI_API_KEY"),
            "anthropic_api_key": os.getenv("ANTHROPIC_API_KEY"),
            "openai_model": os.getenv("OPENAI_MODEL"),
            "anthropic_model": os.getenv("ANTHROPIC_MODEL"),
            "request_timeout": os.getenv("ITALIANBUDDY_TIMEOUT"),
            "database_path": os.getenv("ITALIANBUDDY_DB"),
        }
        try:
            return cls(**{key: value for key, value in values.items() if value})
        except pydantic.ValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration in environment: {e}",
                details={"fields": [".".join(map(str, err["loc"])) for err in e.errors()]},
            ) from e


def mask_key(key: Optional[str]) -> str:
    """Masks an API key for logging (first 8 and last 4 characters)."""
    if not key:
        return "NOT SET"
    if len(key) <= 12:
        return "***"
    return f"{key[:8]}...{key[-4:]}"
