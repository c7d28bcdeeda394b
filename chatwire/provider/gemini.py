"""Google Gemini provider implementation"""

import logging
from typing import AsyncIterator

import httpx

from .base import ChatMessage, Delta, Done, ModelInfo, Provider, StreamEvent, sorted_models
from .endpoints import ProviderKind
from .errors import ProtocolError
from .sse import iter_json_events

logger = logging.getLogger(__name__)


def _get(entry: dict, camel: str, snake: str):
    """Gemini's REST API answers in camelCase; accept snake_case too"""
    value = entry.get(camel)
    return entry.get(snake) if value is None else value


class GeminiProvider(Provider):
    """Provider for Gemini models via streamGenerateContent.

    System messages are not forwarded and no token usage is reported.
    """

    kind = ProviderKind.GEMINI

    PAGE_SIZE = 100
    CHAT_METHOD = "generateContent"

    def _convert_messages(self, messages: list[ChatMessage]) -> list[dict]:
        """Convert chat history to Gemini contents, dropping system messages"""
        return [
            {
                "role": "model" if msg.role == "assistant" else "user",
                "parts": [{"text": msg.content}],
            }
            for msg in messages
            if msg.role != "system"
        ]

    async def stream(self, messages: list[ChatMessage]) -> AsyncIterator[StreamEvent]:
        """Stream a response from Gemini"""
        api_key = self.require_api_key()
        body = {"contents": self._convert_messages(messages)}
        # Merge into the resolved URL so the alt=sse flag survives
        url = httpx.URL(self.chat_url).copy_merge_params({"key": api_key})

        logger.info(f"Making Gemini API call with model: {self.config.model}")

        async with self.http() as client:
            async with client.stream(
                "POST",
                url,
                headers={"Content-Type": "application/json"},
                json=body,
            ) as response:
                await self.raise_for_status(response)

                async for chunk in iter_json_events(response):
                    candidates = chunk.get("candidates") or []
                    if not isinstance(candidates, list):
                        logger.debug(f"Skipping chunk with malformed candidates: {str(candidates)[:200]}")
                        continue

                    for candidate in candidates:
                        content = candidate.get("content") if isinstance(candidate, dict) else None
                        if not isinstance(content, dict):
                            continue
                        parts = content.get("parts") or []
                        if not isinstance(parts, list):
                            logger.debug(f"Skipping candidate with malformed parts: {str(parts)[:200]}")
                            continue
                        for part in parts:
                            text = part.get("text") if isinstance(part, dict) else None
                            if isinstance(text, str) and text:
                                yield Delta(content=text)

        yield Done(total_tokens=0)

    async def list_models(self) -> list[ModelInfo]:
        """List models supporting generateContent, following nextPageToken"""
        api_key = self.require_api_key()

        models: list[ModelInfo] = []
        page_token = None

        while True:
            params = {"key": api_key, "pageSize": self.PAGE_SIZE}
            if page_token:
                params["pageToken"] = page_token

            payload = await self.get_json(self.models_url, params=params)
            if not isinstance(payload, dict):
                raise ProtocolError("Failed to parse model list: expected a JSON object")

            for entry in payload.get("models") or []:
                if not isinstance(entry, dict):
                    raise ProtocolError(f"Failed to parse model list: unexpected entry {entry!r}")

                methods = _get(entry, "supportedGenerationMethods", "supported_generation_methods") or []
                if self.CHAT_METHOD not in methods:
                    continue

                model_id = entry.get("name") or ""
                model_id = model_id.removeprefix("models/")
                if not model_id:
                    continue

                models.append(ModelInfo(
                    id=model_id,
                    display_name=_get(entry, "displayName", "display_name") or model_id,
                    context_window=_get(entry, "inputTokenLimit", "input_token_limit"),
                ))

            page_token = _get(payload, "nextPageToken", "next_page_token")
            if not page_token:
                break

        return sorted_models(models)
