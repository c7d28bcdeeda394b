"""Configuration management"""

import json
import os
from pathlib import Path

from pydantic import BaseModel, Field

from chatwire.provider.endpoints import ProviderKind
from .schema import CopilotSettings, ProviderConfig, ProviderSettings

CONFIG_DIR = Path(os.environ.get("CHATWIRE_CONFIG_DIR", Path.home() / ".config" / "chatwire"))

# Environment fallbacks for API keys, keyed by provider kind
API_KEY_ENV = {
    ProviderKind.OPENAI: "OPENAI_API_KEY",
    ProviderKind.ANTHROPIC: "ANTHROPIC_API_KEY",
    ProviderKind.GEMINI: "GEMINI_API_KEY",
    ProviderKind.MISTRAL: "MISTRAL_API_KEY",
    ProviderKind.GROQ: "GROQ_API_KEY",
    ProviderKind.DEEPSEEK: "DEEPSEEK_API_KEY",
    ProviderKind.OPENROUTER: "OPENROUTER_API_KEY",
    ProviderKind.XAI: "XAI_API_KEY",
}


class Settings(BaseModel):
    timeout: float = 120.0
    default_provider: str | None = None
    providers: dict[str, ProviderSettings] = Field(default_factory=dict)
    copilot: CopilotSettings = Field(default_factory=CopilotSettings)

    @classmethod
    def load(cls, path: Path | None = None) -> "Settings":
        """Load settings from file"""
        if path is None:
            # Look for chatwire.json in current dir, then the config dir
            candidates = [
                Path.cwd() / "chatwire.json",
                CONFIG_DIR / "config.json",
            ]
            for p in candidates:
                if p.exists():
                    path = p
                    break

        if path and path.exists():
            data = json.loads(path.read_text())
            return cls(**data)

        return cls()

    def save(self, path: Path):
        """Save settings to file"""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2))

    def resolve(self, name: str | None = None, model: str | None = None) -> ProviderConfig:
        """Build a ProviderConfig for a named provider entry or a bare provider kind.

        Missing API keys fall back to the kind's environment variable and, for
        GitHub Copilot, to the token saved by ``chatwire copilot-login``.
        """
        name = name or self.default_provider or ProviderKind.OPENAI.value
        entry = self.providers.get(name) or ProviderSettings(kind=name)
        kind = ProviderKind.parse(entry.kind)

        api_key = entry.api_key
        if not api_key and kind in API_KEY_ENV:
            api_key = os.environ.get(API_KEY_ENV[kind])
        if not api_key and kind == ProviderKind.GITHUB_COPILOT:
            from chatwire.auth.credentials import CredentialStore
            api_key = CredentialStore().get_api_key(kind.value)

        return ProviderConfig(
            provider_kind=kind,
            api_key=api_key,
            base_url=entry.base_url,
            model=model or entry.model or "",
        )
