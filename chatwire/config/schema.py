"""Configuration schemas using Pydantic"""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chatwire.provider.endpoints import ProviderKind


class ProviderConfig(BaseModel):
    """Resolved provider configuration for a single call"""
    model_config = ConfigDict(frozen=True)

    provider_kind: ProviderKind = ProviderKind.OPENAI
    api_key: str | None = Field(default=None, repr=False)
    base_url: str | None = None
    model: str = ""

    @field_validator("provider_kind", mode="before")
    @classmethod
    def _parse_kind(cls, value):
        return ProviderKind.parse(value)


class ProviderSettings(BaseModel):
    """A named provider entry in the config file"""
    kind: str = "openai"
    api_key: str | None = Field(default=None, repr=False)
    base_url: str | None = None
    model: str | None = None


class CopilotSettings(BaseModel):
    """GitHub Copilot device flow and request identity"""
    client_id: str = "Iv1.b507a08c87ecfe98"
    scope: str = "read:user"
    integration_id: str = "vscode-chat"
    editor_version: str = "Chatwire/1.0"
    user_agent: str = "Chatwire/1.0"
