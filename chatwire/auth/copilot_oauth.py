"""GitHub Copilot device-flow OAuth and Copilot token exchange"""

import asyncio
import logging
import time

import httpx
from pydantic import BaseModel, ValidationError

from chatwire.config.schema import CopilotSettings
from chatwire.provider.base import check_status, open_client
from chatwire.provider.endpoints import DEFAULT_BASE_URLS, ProviderKind
from chatwire.provider.errors import (
    NetworkError,
    OAuthPending,
    OAuthTerminal,
    OAuthTransient,
    ProtocolError,
    oauth_error,
)

logger = logging.getLogger(__name__)


class DeviceFlowState(BaseModel):
    """What the user needs to authorize this device, held by the caller while polling"""
    device_code: str
    user_code: str
    verification_uri: str
    expires_in: int
    interval: int = 5


class CopilotToken(BaseModel):
    """Short-lived Copilot API token and the API base it is valid for"""
    token: str
    base_url: str
    expires_at: int | None = None


class CopilotOAuth:
    """Handle the three-step GitHub Copilot sign-in.

    Each step is a single HTTP round trip with no retries and no state kept
    between calls; the caller owns polling cadence.
    """

    DEVICE_CODE_URL = "https://github.com/login/device/code"
    TOKEN_URL = "https://github.com/login/oauth/access_token"
    EXCHANGE_URL = "https://api.github.com/copilot_internal/v2/token"
    GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"
    DEFAULT_API_BASE = DEFAULT_BASE_URLS[ProviderKind.GITHUB_COPILOT]

    def __init__(
        self,
        settings: CopilotSettings | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self.settings = settings or CopilotSettings()
        self._client = client
        self.timeout = timeout

    async def _request(self, method: str, url: str, label: str, **kwargs) -> httpx.Response:
        async with open_client(self._client, self.timeout) as client:
            try:
                response = await client.request(method, url, **kwargs)
            except httpx.TransportError as e:
                raise NetworkError(f"{label}: {e}") from e
            await check_status(response, label)
            return response

    def _json(self, response: httpx.Response, what: str) -> dict:
        try:
            data = response.json()
        except ValueError as e:
            raise ProtocolError(f"Failed to parse {what}: {e}") from e
        if not isinstance(data, dict):
            raise ProtocolError(f"Failed to parse {what}: expected a JSON object")
        return data

    async def start_device_flow(self) -> DeviceFlowState:
        """Step 1: request a device code and the user code to show"""
        response = await self._request(
            "POST",
            self.DEVICE_CODE_URL,
            "GitHub device flow error",
            headers={"Accept": "application/json"},
            data={"client_id": self.settings.client_id, "scope": self.settings.scope},
        )
        try:
            return DeviceFlowState.model_validate(self._json(response, "device code response"))
        except ValidationError as e:
            raise ProtocolError(f"Failed to parse device code response: {e}") from e

    async def poll_token(self, device_code: str) -> str:
        """Step 2: one attempt at trading the device code for a GitHub token.

        Raises OAuthPending while the user has not finished, OAuthTransient on
        ``slow_down`` and OAuthTerminal for expired or denied codes.
        """
        response = await self._request(
            "POST",
            self.TOKEN_URL,
            "GitHub OAuth error",
            headers={"Accept": "application/json"},
            data={
                "client_id": self.settings.client_id,
                "device_code": device_code,
                "grant_type": self.GRANT_TYPE,
            },
        )
        data = self._json(response, "token response")

        if data.get("access_token"):
            return data["access_token"]
        if data.get("error"):
            raise oauth_error(data["error"], data.get("error_description") or "")
        raise ProtocolError("Unknown error during OAuth polling")

    async def exchange_token(self, github_token: str) -> CopilotToken:
        """Step 3: trade the long-lived GitHub token for a Copilot API token"""
        response = await self._request(
            "GET",
            self.EXCHANGE_URL,
            "Copilot token exchange error",
            headers={
                "Authorization": f"token {github_token}",
                "User-Agent": self.settings.user_agent,
                "Accept": "application/json",
            },
        )
        data = self._json(response, "Copilot token")

        token = data.get("token")
        if not token:
            raise ProtocolError("No Copilot token in response")

        endpoints = data.get("endpoints") or {}
        base_url = endpoints.get("api") if isinstance(endpoints, dict) else None
        logger.info(f"Copilot token exchanged, base_url={base_url or self.DEFAULT_API_BASE}")

        return CopilotToken(
            token=token,
            base_url=(base_url or self.DEFAULT_API_BASE).rstrip("/"),
            expires_at=data.get("expires_at"),
        )

    async def wait_for_token(self, state: DeviceFlowState, sleep=asyncio.sleep, clock=time.monotonic) -> str:
        """Poll until the user authorizes, the code expires or access is denied"""
        interval = max(state.interval, 1)
        deadline = clock() + state.expires_in

        while True:
            await sleep(interval)
            try:
                return await self.poll_token(state.device_code)
            except OAuthPending:
                pass
            except OAuthTransient:
                interval += 5
                logger.debug(f"slow_down received, polling every {interval}s")
            if clock() >= deadline:
                raise OAuthTerminal("expired_token", "device code expired before authorization")
