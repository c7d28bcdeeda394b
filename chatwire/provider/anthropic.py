"""Anthropic provider implementation"""

import logging
from typing import AsyncIterator

from .base import ChatMessage, Delta, Done, ModelInfo, Provider, StreamEvent, sorted_models
from .endpoints import ProviderKind
from .errors import ProtocolError, ProviderError
from .sse import iter_json_events

logger = logging.getLogger(__name__)


class AnthropicProvider(Provider):
    """Provider for Anthropic Claude models via the Messages API"""

    kind = ProviderKind.ANTHROPIC

    API_VERSION = "2023-06-01"
    MAX_TOKENS = 4096
    PAGE_SIZE = 100

    def _headers(self, api_key: str) -> dict:
        return {
            "Content-Type": "application/json",
            "x-api-key": api_key,
            "anthropic-version": self.API_VERSION,
        }

    def _split_system(self, messages: list[ChatMessage]) -> tuple[str | None, list[dict]]:
        """Pull system messages out of the history.

        Only the first system message becomes the top-level ``system`` field;
        any further system messages are dropped.
        """
        system = None
        chat_messages = []
        for msg in messages:
            if msg.role == "system":
                if system is None:
                    system = msg.content
                else:
                    logger.debug("Dropping additional system message")
                continue
            chat_messages.append({"role": msg.role, "content": msg.content})
        return system, chat_messages

    async def stream(self, messages: list[ChatMessage]) -> AsyncIterator[StreamEvent]:
        """Stream a response from Claude using raw HTTP"""
        api_key = self.require_api_key()
        system, chat_messages = self._split_system(messages)

        body = {
            "model": self.config.model,
            "messages": chat_messages,
            "max_tokens": self.MAX_TOKENS,
            "stream": True,
        }
        if system is not None:
            body["system"] = system

        logger.info(f"Making Anthropic API call with model: {self.config.model}")
        total_tokens = 0

        async with self.http() as client:
            async with client.stream(
                "POST",
                self.chat_url,
                headers=self._headers(api_key),
                json=body,
            ) as response:
                await self.raise_for_status(response)

                async for data in iter_json_events(response):
                    event_type = data.get("type")

                    if event_type == "content_block_delta":
                        delta = data.get("delta") or {}
                        text = delta.get("text") if isinstance(delta, dict) else None
                        if isinstance(text, str) and text:
                            yield Delta(content=text)

                    elif event_type == "message_delta":
                        usage = data.get("usage")
                        if not isinstance(usage, dict):
                            continue
                        output_tokens = usage.get("output_tokens") or 0
                        input_tokens = usage.get("input_tokens") or 0
                        if not isinstance(output_tokens, int) or not isinstance(input_tokens, int):
                            logger.debug(f"Skipping message_delta with malformed usage: {str(usage)[:200]}")
                            continue
                        total_tokens = output_tokens + input_tokens

                    elif event_type == "message_stop":
                        break

                    elif event_type == "error":
                        error = data.get("error") or {}
                        message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
                        raise ProviderError(f"Stream error: {message}")

        yield Done(total_tokens=total_tokens)

    async def list_models(self) -> list[ModelInfo]:
        """List models, following the after_id cursor while has_more is set"""
        api_key = self.require_api_key()
        headers = {
            "x-api-key": api_key,
            "anthropic-version": self.API_VERSION,
        }

        models: list[ModelInfo] = []
        after_id = None

        while True:
            params = {"limit": self.PAGE_SIZE}
            if after_id:
                params["after_id"] = after_id

            payload = await self.get_json(self.models_url, headers=headers, params=params)
            data = payload.get("data") if isinstance(payload, dict) else None
            if not isinstance(data, list):
                raise ProtocolError("Failed to parse model list: expected an object with a 'data' array")

            for entry in data:
                if not isinstance(entry, dict) or not isinstance(entry.get("id"), str):
                    raise ProtocolError(f"Failed to parse model list: entry without an id: {entry!r}")
                models.append(ModelInfo(
                    id=entry["id"],
                    display_name=entry.get("display_name") or entry["id"],
                ))

            after_id = payload.get("last_id")
            if payload.get("has_more") is not True or not after_id:
                break

        return sorted_models(models)
