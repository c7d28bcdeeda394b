"""OpenRouter provider - unified access to many models with one key"""

import logging

from .base import ModelInfo, sorted_models
from .endpoints import ProviderKind
from .errors import ProtocolError
from .openai import OpenAICompatibleProvider

logger = logging.getLogger(__name__)


def _outputs_text(entry: dict) -> bool:
    """Entries without declared output modalities are assumed to produce text"""
    architecture = entry.get("architecture") or {}
    modalities = architecture.get("output_modalities") if isinstance(architecture, dict) else None
    if modalities is None:
        return True
    return "text" in modalities


class OpenRouterProvider(OpenAICompatibleProvider):
    """Chat streams like any OpenAI-compatible API; the catalog has its own shape"""

    kind = ProviderKind.OPENROUTER
    error_label = "OpenRouter API error"

    def _headers(self, token: str) -> dict:
        headers = super()._headers(token)
        headers["X-Title"] = "chatwire"
        return headers

    async def list_models(self) -> list[ModelInfo]:
        """List text-output models. The catalog is public, the key is optional."""
        headers = {}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"

        payload = await self.get_json(self.models_url, headers=headers)
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise ProtocolError("Failed to parse model list: expected an object with a 'data' array")

        models = []
        for entry in data:
            if not isinstance(entry, dict) or not isinstance(entry.get("id"), str):
                raise ProtocolError(f"Failed to parse model list: entry without an id: {entry!r}")
            if not _outputs_text(entry):
                continue
            models.append(ModelInfo(
                id=entry["id"],
                display_name=entry.get("name") or entry["id"],
                context_window=entry.get("context_length"),
            ))

        logger.debug(f"OpenRouter returned {len(data)} models, {len(models)} produce text")
        return sorted_models(models)
