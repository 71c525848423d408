"""LLM service wrapping claude-agent-sdk.

Routes to Claude cloud or a local Ollama server based on config.
Uses the `query()` async iterator API from claude-agent-sdk.
"""

from __future__ import annotations

import logging
import os
from typing import NamedTuple, Protocol

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ClaudeSDKError,
    CLINotFoundError,
    ResultMessage,
    TextBlock,
    query,
)

from jobtracker.config import Settings
from jobtracker.errors import NonRetryableRemoteError, RetryableRemoteError

logger = logging.getLogger(__name__)

# Substrings marking a misconfigured model; retrying cannot help.
_NOT_FOUND_MARKERS = ("404", "not found", "not_found_error")


class Generation(NamedTuple):
    text: str
    tokens_used: int | None = None


class TextGenerator(Protocol):
    model_name: str

    async def generate(self, prompt: str, system: str = "") -> Generation: ...


def classify_error(message: str) -> type[RetryableRemoteError] | type[NonRetryableRemoteError]:
    lowered = message.lower()
    if any(marker in lowered for marker in _NOT_FOUND_MARKERS):
        return NonRetryableRemoteError
    return RetryableRemoteError


def _configure_env(settings: Settings) -> None:
    """Set environment variables for cloud vs local mode."""
    if settings.llm_mode == "local":
        os.environ["ANTHROPIC_BASE_URL"] = settings.local_ollama_url
        os.environ["ANTHROPIC_AUTH_TOKEN"] = "ollama"
        os.environ["ANTHROPIC_API_KEY"] = ""
        logger.info(
            "LLM mode: local (Ollama at %s, model: %s)",
            settings.local_ollama_url,
            settings.local_model,
        )
    else:
        for var in ("ANTHROPIC_BASE_URL", "ANTHROPIC_AUTH_TOKEN"):
            os.environ.pop(var, None)
        logger.info("LLM mode: cloud")


def _build_options(settings: Settings, system: str) -> ClaudeAgentOptions:
    """Build ClaudeAgentOptions with the right system prompt and no tools."""
    opts = ClaudeAgentOptions(
        system_prompt=system or None,
        allowed_tools=[],  # pure text completion
        max_turns=1,
    )
    if settings.llm_mode == "local":
        opts.model = settings.local_model
    return opts


def _tokens_from_usage(usage: dict | None) -> int | None:
    if not usage:
        return None
    total = sum(v for k, v in usage.items() if k.endswith("_tokens") and isinstance(v, int))
    return total or None


async def _query_llm(settings: Settings, system: str, prompt: str) -> Generation:
    """Send a prompt via claude-agent-sdk and collect the text response."""
    options = _build_options(settings, system)
    text_parts: list[str] = []
    tokens: int | None = None

    try:
        async for message in query(prompt=prompt, options=options):
            if isinstance(message, AssistantMessage):
                for block in message.content:
                    if isinstance(block, TextBlock):
                        text_parts.append(block.text)
            elif isinstance(message, ResultMessage):
                if message.is_error:
                    detail = message.result or "unknown error"
                    logger.error("LLM query returned error: %s", detail)
                    raise classify_error(detail)(f"LLM error: {detail}")
                tokens = _tokens_from_usage(message.usage)
    except CLINotFoundError as e:
        raise NonRetryableRemoteError(f"Claude CLI not available: {e}") from e
    except ClaudeSDKError as e:
        raise classify_error(str(e))(f"LLM call failed: {e}") from e

    return Generation("".join(text_parts), tokens)


class LLMService:
    """TextGenerator over claude-agent-sdk."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._initialized = False

    @property
    def model_name(self) -> str:
        if self._settings.llm_mode == "local":
            return self._settings.local_model
        return self._settings.ai_model

    async def initialize(self) -> None:
        _configure_env(self._settings)
        self._initialized = True
        logger.info("LLM service initialized (mode: %s)", self._settings.llm_mode)

    async def generate(self, prompt: str, system: str = "") -> Generation:
        if not self._initialized:
            await self.initialize()
        return await _query_llm(self._settings, system, prompt)
