"""GitHub Copilot provider - token exchange, then OpenAI-compatible chat"""

import json
import logging
from typing import AsyncIterator

from chatwire.auth.copilot_oauth import CopilotOAuth, CopilotToken
from .base import ChatMessage, ModelInfo, StreamEvent, denylist_filter, sorted_models
from .endpoints import ProviderKind
from .errors import ProtocolError
from .openai import OpenAICompatibleProvider, parse_model_entries

logger = logging.getLogger(__name__)

_allowed = denylist_filter("embed", "inference")


class CopilotProvider(OpenAICompatibleProvider):
    """Provider for GitHub Copilot.

    ``config.api_key`` holds the long-lived GitHub OAuth token. Every call
    exchanges it for a short-lived Copilot token and talks to the API base
    returned by the exchange.
    """

    kind = ProviderKind.GITHUB_COPILOT
    error_label = "Copilot API error"

    async def _exchange(self) -> CopilotToken:
        github_token = self.require_api_key("GitHub Copilot not authenticated. Sign in first.")
        oauth = CopilotOAuth(self.settings.copilot, client=self._client, timeout=self.settings.timeout)
        return await oauth.exchange_token(github_token)

    def _copilot_headers(self, token: str) -> dict:
        return {
            "Authorization": f"Bearer {token}",
            "Copilot-Integration-Id": self.settings.copilot.integration_id,
            "Editor-Version": self.settings.copilot.editor_version,
        }

    async def stream(self, messages: list[ChatMessage]) -> AsyncIterator[StreamEvent]:
        """Exchange the GitHub token, then stream like any OpenAI-compatible API"""
        copilot = await self._exchange()
        logger.info(f"Making Copilot API call with model: {self.config.model}")

        headers = {"Content-Type": "application/json", **self._copilot_headers(copilot.token)}
        async for event in self._stream_completions(f"{copilot.base_url}/chat/completions", headers, messages):
            yield event

    async def list_models(self) -> list[ModelInfo]:
        """List Copilot chat models.

        The endpoint usually answers in the OpenAI ``{"data": [...]}`` shape;
        a bare JSON array of model objects is accepted as well.
        """
        copilot = await self._exchange()
        headers = {
            **self._copilot_headers(copilot.token),
            "User-Agent": self.settings.copilot.user_agent,
            "Accept": "application/json",
        }

        response = await self.get(f"{copilot.base_url}/models", headers=headers, label="Copilot models error")
        text = response.text

        logger.debug(f"Copilot models response: {len(text)} bytes")

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise ProtocolError(f"Unexpected Copilot models response format: {text[:200]}") from e

        try:
            return self._to_model_infos(parse_model_entries(payload), _allowed)
        except ProtocolError:
            pass

        if isinstance(payload, list):
            models = [
                ModelInfo(
                    id=entry["id"],
                    display_name=entry.get("name") or entry["id"],
                    context_window=entry.get("context_window"),
                )
                for entry in payload
                if isinstance(entry, dict) and isinstance(entry.get("id"), str) and _allowed(entry["id"])
            ]
            return sorted_models(models)

        raise ProtocolError(f"Unexpected Copilot models response format: {text[:200]}")
