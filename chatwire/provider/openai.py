"""OpenAI-compatible provider: OpenAI, Mistral, Groq, DeepSeek, xAI and friends"""

import json
import logging
from typing import AsyncIterator

from .base import (
    ChatMessage,
    Delta,
    Done,
    ModelInfo,
    Provider,
    StreamEvent,
    denylist_filter,
    sorted_models,
)
from .endpoints import ProviderKind
from .errors import ProtocolError
from .sse import DONE_SENTINEL, iter_sse_data

logger = logging.getLogger(__name__)


def _allow_all(model_id: str) -> bool:
    return True


# Non-chat models (embeddings, speech, images, fine-tunes) per provider kind
MODEL_FILTERS = {
    ProviderKind.OPENAI: denylist_filter(
        "embed", "tts", "dall-e", "whisper", "moderation", "babbage", "davinci",
        prefixes=("ft:",),
    ),
    ProviderKind.MISTRAL: denylist_filter("embed"),
    ProviderKind.GROQ: denylist_filter("whisper", "guard", "playai-tts", "distil-whisper"),
    ProviderKind.XAI: denylist_filter("imagine"),
}


def parse_model_entries(payload) -> list[dict]:
    """Extract the ``data`` entries of an OpenAI-style ``/models`` response"""
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, list):
        raise ProtocolError("Failed to parse model list: expected an object with a 'data' array")
    for entry in data:
        if not isinstance(entry, dict) or not isinstance(entry.get("id"), str):
            raise ProtocolError(f"Failed to parse model list: entry without an id: {entry!r}")
    return data


class OpenAICompatibleProvider(Provider):
    """Provider for APIs speaking OpenAI's streaming chat completions protocol"""

    kind = ProviderKind.OPENAI

    def _headers(self, token: str) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }

    async def stream(self, messages: list[ChatMessage]) -> AsyncIterator[StreamEvent]:
        """Stream a response from an OpenAI-compatible endpoint"""
        api_key = self.require_api_key()
        logger.info(f"Making {self.config.provider_kind.value} API call with model: {self.config.model}")

        async for event in self._stream_completions(self.chat_url, self._headers(api_key), messages):
            yield event

    async def _stream_completions(
        self,
        url: str,
        headers: dict,
        messages: list[ChatMessage],
    ) -> AsyncIterator[StreamEvent]:
        body = {
            "model": self.config.model,
            "messages": [m.model_dump() for m in messages],
            "stream": True,
        }
        logger.debug(f"Messages count: {len(messages)}")

        total_tokens = 0

        async with self.http() as client:
            async with client.stream("POST", url, headers=headers, json=body) as response:
                await self.raise_for_status(response)

                async for data in iter_sse_data(response):
                    if data == DONE_SENTINEL:
                        break

                    try:
                        chunk = json.loads(data)
                    except json.JSONDecodeError:
                        logger.debug(f"Skipping malformed chunk: {data[:200]}")
                        continue
                    if not isinstance(chunk, dict):
                        continue

                    choices = chunk.get("choices") or []
                    if not isinstance(choices, list):
                        logger.debug(f"Skipping chunk with malformed choices: {str(choices)[:200]}")
                        continue

                    for choice in choices:
                        if not isinstance(choice, dict):
                            continue

                        delta = choice.get("delta") or {}
                        content = delta.get("content") if isinstance(delta, dict) else None
                        if isinstance(content, str) and content:
                            yield Delta(content=content)

                        if choice.get("finish_reason") is not None:
                            usage = chunk.get("usage")
                            tokens = usage.get("total_tokens") if isinstance(usage, dict) else None
                            if isinstance(tokens, int):
                                total_tokens = tokens
                            elif tokens is not None:
                                logger.debug(f"Ignoring malformed usage: {str(usage)[:200]}")

        yield Done(total_tokens=total_tokens)

    def _to_model_infos(self, entries: list[dict], allowed) -> list[ModelInfo]:
        return sorted_models(
            ModelInfo(id=entry["id"], display_name=entry["id"])
            for entry in entries
            if allowed(entry["id"])
        )

    async def list_models(self) -> list[ModelInfo]:
        """List chat models via the OpenAI-compatible /models endpoint"""
        api_key = self.require_api_key()
        payload = await self.get_json(self.models_url, headers={"Authorization": f"Bearer {api_key}"})
        allowed = MODEL_FILTERS.get(self.config.provider_kind, _allow_all)
        return self._to_model_infos(parse_model_entries(payload), allowed)
