"""Helpers that drain a chat stream into a single result"""

import logging
from dataclasses import dataclass
from typing import Iterable

import httpx

from chatwire.config.config import Settings
from chatwire.config.schema import ProviderConfig
from .base import ChatMessage, Delta, Done, Error, Started
from .router import stream_chat

logger = logging.getLogger(__name__)

# Cheap model used when probing a provider that has no model configured
PROBE_MODEL = "gpt-4o-mini"


@dataclass
class ChatResult:
    """Aggregated outcome of one streamed chat completion"""
    message_id: str = ""
    content: str = ""
    total_tokens: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ConnectionCheck:
    success: bool
    error: str | None = None


async def collect_chat(
    config: ProviderConfig,
    messages: Iterable[ChatMessage | dict],
    *,
    client: httpx.AsyncClient | None = None,
    settings: Settings | None = None,
) -> ChatResult:
    """Run a chat stream to completion and concatenate its deltas"""
    result = ChatResult()
    parts: list[str] = []

    async for event in stream_chat(config, messages, client=client, settings=settings):
        if isinstance(event, Started):
            result.message_id = event.message_id
        elif isinstance(event, Delta):
            parts.append(event.content)
        elif isinstance(event, Done):
            result.total_tokens = event.total_tokens
        elif isinstance(event, Error):
            result.error = event.message

    result.content = "".join(parts)
    return result


async def probe_connection(
    config: ProviderConfig,
    model: str | None = None,
    *,
    client: httpx.AsyncClient | None = None,
    settings: Settings | None = None,
) -> ConnectionCheck:
    """Send a one-word prompt and report whether any text came back"""
    model = model or config.model or PROBE_MODEL
    probe_config = config.model_copy(update={"model": model})
    result = await collect_chat(
        probe_config,
        [ChatMessage(role="user", content="Hello")],
        client=client,
        settings=settings,
    )

    if result.content:
        return ConnectionCheck(success=True)

    logger.info(f"Connection check for {config.provider_kind.value} failed: {result.error}")
    return ConnectionCheck(success=False, error=result.error or "No response received")
