"""Provider abstraction and the normalized stream vocabulary"""

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from typing import AsyncIterator, ClassVar, Iterable, Literal, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field

from chatwire.config.config import Settings
from chatwire.config.schema import ProviderConfig
from .endpoints import ProviderKind, chat_endpoint, models_endpoint
from .errors import ConfigError, NetworkError, ProtocolError, UpstreamError

logger = logging.getLogger(__name__)


class ChatMessage(BaseModel):
    """One turn of the conversation history"""
    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str


class ModelInfo(BaseModel):
    """A model offered by a provider's catalog"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    display_name: str = Field(alias="displayName")
    context_window: int | None = Field(default=None, alias="contextWindow")


@dataclass(frozen=True)
class Started:
    message_id: str
    event: ClassVar[str] = "started"

    def to_dict(self) -> dict:
        return {"event": self.event, "data": asdict(self)}


@dataclass(frozen=True)
class Delta:
    content: str
    event: ClassVar[str] = "delta"

    def to_dict(self) -> dict:
        return {"event": self.event, "data": asdict(self)}


@dataclass(frozen=True)
class Done:
    total_tokens: int = 0
    event: ClassVar[str] = "done"

    def to_dict(self) -> dict:
        return {"event": self.event, "data": asdict(self)}


@dataclass(frozen=True)
class Error:
    message: str
    event: ClassVar[str] = "error"

    def to_dict(self) -> dict:
        return {"event": self.event, "data": asdict(self)}


StreamEvent = Union[Started, Delta, Done, Error]


@asynccontextmanager
async def open_client(client: httpx.AsyncClient | None, timeout: float) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the injected client, or a fresh one closed on exit"""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout) as fresh:
        yield fresh


async def check_status(response: httpx.Response, label: str):
    """Raise UpstreamError carrying status and body for a non-2xx response"""
    if response.is_success:
        return
    body = (await response.aread()).decode("utf-8", errors="replace")
    raise UpstreamError(label, response.status_code, body)


def is_terminal(event: StreamEvent) -> bool:
    """Done and Error end a stream; nothing follows them"""
    return isinstance(event, (Done, Error))


def sorted_models(models: Iterable[ModelInfo]) -> list[ModelInfo]:
    """Deduplicate by id (first occurrence wins) and sort ascending by id"""
    unique: dict[str, ModelInfo] = {}
    for model in models:
        unique.setdefault(model.id, model)
    return [unique[key] for key in sorted(unique)]


def denylist_filter(*substrings: str, prefixes: tuple[str, ...] = ()):
    """Build a predicate rejecting ids containing any substring (case-insensitive)"""
    def allowed(model_id: str) -> bool:
        lowered = model_id.lower()
        if any(s in lowered for s in substrings):
            return False
        return not any(lowered.startswith(p) for p in prefixes)
    return allowed


class Provider(ABC):
    """Base class for provider strategies.

    A provider turns an ordered message list into normalized stream events
    and lists the models its upstream offers. Instances are cheap and are
    built fresh for every call; they hold no state across calls.
    """

    kind: ProviderKind = ProviderKind.OPENAI_COMPATIBLE
    # Label used in upstream error messages, e.g. "API error 401: ..."
    error_label: str = "API error"

    def __init__(
        self,
        config: ProviderConfig,
        client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
    ):
        self.config = config
        self.settings = settings or Settings()
        self._client = client

    @property
    def chat_url(self) -> str:
        return chat_endpoint(self.config.provider_kind, self.config.base_url, self.config.model)

    @property
    def models_url(self) -> str:
        return models_endpoint(self.config.provider_kind, self.config.base_url)

    def require_api_key(self, message: str = "API key not configured") -> str:
        """Return the configured API key or fail before any request is made"""
        if not self.config.api_key:
            raise ConfigError(message)
        return self.config.api_key

    def http(self):
        return open_client(self._client, self.settings.timeout)

    async def raise_for_status(self, response: httpx.Response, label: str | None = None):
        await check_status(response, label or self.error_label)

    async def get(
        self,
        url: str,
        headers: dict | None = None,
        params: dict | None = None,
        connect_hint: str = "",
        label: str | None = None,
    ) -> httpx.Response:
        """GET a URL, mapping transport failures and non-2xx statuses to ProviderErrors"""
        async with self.http() as client:
            try:
                response = await client.get(url, headers=headers, params=params)
            except httpx.TransportError as e:
                raise NetworkError(f"Failed to connect: {e}{connect_hint}") from e
            await self.raise_for_status(response, label)
            return response

    async def get_json(self, url: str, **kwargs):
        """GET a listing URL and decode its JSON body, failing loudly on any problem"""
        response = await self.get(url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise ProtocolError(f"Failed to parse model list: {e}") from e

    @abstractmethod
    def stream(self, messages: list[ChatMessage]) -> AsyncIterator[StreamEvent]:
        """Stream Delta events followed by a terminal Done.

        Failures are raised as ProviderError or httpx errors; the router turns
        them into a terminal Error event.
        """

    @abstractmethod
    async def list_models(self) -> list[ModelInfo]:
        """Return the provider's chat-capable models, sorted by id"""
