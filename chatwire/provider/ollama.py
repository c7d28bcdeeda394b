"""Ollama provider - local models over newline-delimited JSON"""

import json
import logging
from typing import AsyncIterator

from .base import ChatMessage, Delta, Done, ModelInfo, Provider, StreamEvent, sorted_models
from .endpoints import ProviderKind
from .errors import ProtocolError

logger = logging.getLogger(__name__)


def _parse_line(line: bytes) -> dict | None:
    line = line.strip()
    if not line:
        return None
    try:
        data = json.loads(line)
    except ValueError:
        logger.debug(f"Skipping malformed line: {line[:200]!r}")
        return None
    return data if isinstance(data, dict) else None


class OllamaProvider(Provider):
    """Provider for a local Ollama server. No auth, no token usage."""

    kind = ProviderKind.OLLAMA
    error_label = "Ollama error"

    async def stream(self, messages: list[ChatMessage]) -> AsyncIterator[StreamEvent]:
        """Stream a response from /api/chat, splitting NDJSON lines across reads"""
        body = {
            "model": self.config.model,
            "messages": [m.model_dump() for m in messages],
            "stream": True,
        }
        logger.info(f"Making Ollama API call with model: {self.config.model}")

        async with self.http() as client:
            async with client.stream(
                "POST",
                self.chat_url,
                headers={"Content-Type": "application/json"},
                json=body,
            ) as response:
                await self.raise_for_status(response)

                # Bytes, not text, so multibyte characters split across reads survive
                buffer = b""
                async for chunk in response.aiter_bytes():
                    buffer += chunk
                    while b"\n" in buffer:
                        line, buffer = buffer.split(b"\n", 1)
                        data = _parse_line(line)
                        if data is None:
                            continue

                        for event in self._events(data):
                            yield event
                            if isinstance(event, Done):
                                return

                # A final line may arrive without its newline
                data = _parse_line(buffer)
                if data is not None:
                    for event in self._events(data):
                        yield event
                        if isinstance(event, Done):
                            return

        yield Done(total_tokens=0)

    def _events(self, data: dict) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        message = data.get("message")
        if isinstance(message, dict):
            content = message.get("content")
            if isinstance(content, str) and content:
                events.append(Delta(content=content))
        if data.get("done") is True:
            events.append(Done(total_tokens=0))
        return events

    async def list_models(self) -> list[ModelInfo]:
        """List locally pulled models from /api/tags"""
        payload = await self.get_json(self.models_url, connect_hint=". Is Ollama running?")
        if not isinstance(payload, dict):
            raise ProtocolError("Failed to parse model list: expected a JSON object")

        models = []
        for entry in payload.get("models") or []:
            if not isinstance(entry, dict):
                raise ProtocolError(f"Failed to parse model list: unexpected entry {entry!r}")
            model_id = entry.get("model") or entry.get("name")
            if not model_id:
                continue
            models.append(ModelInfo(id=model_id, display_name=model_id))

        return sorted_models(models)
