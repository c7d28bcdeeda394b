"""Provider selection and the streaming entry points callers use"""

import asyncio
import logging
import uuid
from contextlib import aclosing
from typing import AsyncIterator, Callable, Iterable, Type

import httpx
from pydantic import ValidationError

from chatwire.config.config import Settings
from chatwire.config.schema import ProviderConfig
from .anthropic import AnthropicProvider
from .base import ChatMessage, Done, Error, ModelInfo, Provider, Started, StreamEvent, is_terminal
from .copilot import CopilotProvider
from .endpoints import ProviderKind
from .errors import ProviderError
from .gemini import GeminiProvider
from .ollama import OllamaProvider
from .openai import OpenAICompatibleProvider
from .openrouter import OpenRouterProvider

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Stream cancelled"

# One strategy per provider kind
PROVIDERS: dict[ProviderKind, Type[Provider]] = {
    ProviderKind.OPENAI: OpenAICompatibleProvider,
    ProviderKind.MISTRAL: OpenAICompatibleProvider,
    ProviderKind.GROQ: OpenAICompatibleProvider,
    ProviderKind.DEEPSEEK: OpenAICompatibleProvider,
    ProviderKind.XAI: OpenAICompatibleProvider,
    ProviderKind.OPENAI_COMPATIBLE: OpenAICompatibleProvider,
    ProviderKind.OPENROUTER: OpenRouterProvider,
    ProviderKind.ANTHROPIC: AnthropicProvider,
    ProviderKind.GEMINI: GeminiProvider,
    ProviderKind.OLLAMA: OllamaProvider,
    ProviderKind.GITHUB_COPILOT: CopilotProvider,
}


def get_provider(
    config: ProviderConfig,
    client: httpx.AsyncClient | None = None,
    settings: Settings | None = None,
) -> Provider:
    """Get a fresh provider instance for the config's provider kind"""
    provider_class = PROVIDERS[config.provider_kind]
    return provider_class(config, client=client, settings=settings)


def _to_messages(messages: Iterable[ChatMessage | dict]) -> list[ChatMessage]:
    return [m if isinstance(m, ChatMessage) else ChatMessage.model_validate(m) for m in messages]


async def stream_chat(
    config: ProviderConfig,
    messages: Iterable[ChatMessage | dict],
    *,
    client: httpx.AsyncClient | None = None,
    settings: Settings | None = None,
) -> AsyncIterator[StreamEvent]:
    """Stream normalized events for one chat completion.

    Always yields ``Started`` first and exactly one terminal ``Done`` or
    ``Error`` last. Failures never raise out of this generator; they become
    the terminal ``Error``. Closing the generator early closes the upstream
    connection.
    """
    yield Started(message_id=str(uuid.uuid4()))

    try:
        provider = get_provider(config, client=client, settings=settings)
        async with aclosing(provider.stream(_to_messages(messages))) as events:
            async for event in events:
                yield event
                if is_terminal(event):
                    return
    except ProviderError as e:
        logger.warning(f"{config.provider_kind.value} stream failed: {e}")
        yield Error(message=str(e))
        return
    except (httpx.HTTPError, httpx.StreamError) as e:
        logger.warning(f"{config.provider_kind.value} stream error: {e}")
        yield Error(message=f"Stream error: {e}")
        return
    except ValidationError as e:
        yield Error(message=f"Invalid message: {e}")
        return
    except Exception as e:
        logger.exception(f"Unexpected error while streaming from {config.provider_kind.value}")
        yield Error(message=f"Stream error: {e}")
        return

    # Adapters end with Done; this covers one that returns without it
    yield Done(total_tokens=0)


async def run_chat(
    config: ProviderConfig,
    messages: Iterable[ChatMessage | dict],
    on_event: Callable[[StreamEvent], None],
    *,
    cancel: asyncio.Event | None = None,
    client: httpx.AsyncClient | None = None,
    settings: Settings | None = None,
) -> None:
    """Drive ``stream_chat`` and hand each event to ``on_event`` in order.

    If ``cancel`` is set before the stream ends, the in-flight read is
    cancelled, the connection closed and ``Error("Stream cancelled")`` is the
    terminal event.
    """
    finished = False

    async def drive():
        nonlocal finished
        async with aclosing(stream_chat(config, messages, client=client, settings=settings)) as events:
            async for event in events:
                finished = finished or is_terminal(event)
                on_event(event)

    if cancel is None:
        await drive()
        return

    stream_task = asyncio.create_task(drive())
    cancel_task = asyncio.create_task(cancel.wait())
    try:
        await asyncio.wait({stream_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        cancel_task.cancel()
        if not stream_task.done():
            stream_task.cancel()
        try:
            await stream_task
        except asyncio.CancelledError:
            logger.info("Chat stream cancelled by caller")

    if not finished:
        on_event(Error(message=CANCELLED_MESSAGE))


async def list_models(
    config: ProviderConfig,
    *,
    client: httpx.AsyncClient | None = None,
    settings: Settings | None = None,
) -> list[ModelInfo]:
    """Fetch the provider's model catalog, sorted by id. Failures raise ProviderError."""
    provider = get_provider(config, client=client, settings=settings)
    models = await provider.list_models()
    logger.info(f"{config.provider_kind.value} listed {len(models)} models")
    return models
