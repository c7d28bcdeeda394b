"""Provider kinds and the URLs each one is reached at"""

from enum import Enum


class ProviderKind(str, Enum):
    """Closed set of upstream APIs chatwire knows how to talk to."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    OLLAMA = "ollama"
    GITHUB_COPILOT = "github_copilot"
    MISTRAL = "mistral"
    GROQ = "groq"
    DEEPSEEK = "deepseek"
    OPENROUTER = "openrouter"
    XAI = "xai"
    OPENAI_COMPATIBLE = "openai_compatible"

    @classmethod
    def parse(cls, value: "str | ProviderKind") -> "ProviderKind":
        """Parse a kind string; anything unknown is treated as OpenAI-compatible"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.OPENAI_COMPATIBLE


DEFAULT_BASE_URLS: dict[ProviderKind, str] = {
    ProviderKind.OPENAI: "https://api.openai.com/v1",
    ProviderKind.ANTHROPIC: "https://api.anthropic.com",
    ProviderKind.GEMINI: "https://generativelanguage.googleapis.com",
    ProviderKind.OLLAMA: "http://localhost:11434",
    ProviderKind.GITHUB_COPILOT: "https://api.individual.githubcopilot.com",
    ProviderKind.MISTRAL: "https://api.mistral.ai/v1",
    ProviderKind.GROQ: "https://api.groq.com/openai/v1",
    ProviderKind.DEEPSEEK: "https://api.deepseek.com",
    ProviderKind.OPENROUTER: "https://openrouter.ai/api/v1",
    ProviderKind.XAI: "https://api.x.ai/v1",
    ProviderKind.OPENAI_COMPATIBLE: "https://api.openai.com/v1",
}

# Path suffixes appended to the base: (chat, models)
_PATHS: dict[ProviderKind, tuple[str, str]] = {
    ProviderKind.ANTHROPIC: ("/v1/messages", "/v1/models"),
    ProviderKind.GEMINI: ("/v1beta/models/{model}:streamGenerateContent?alt=sse", "/v1beta/models"),
    ProviderKind.OLLAMA: ("/api/chat", "/api/tags"),
}
_OPENAI_PATHS = ("/chat/completions", "/models")


def base_url(kind: "str | ProviderKind", override: str | None = None) -> str:
    """Return the override (without trailing slash) or the kind's default base"""
    if override:
        return override.rstrip("/")
    return DEFAULT_BASE_URLS[ProviderKind.parse(kind)]


def chat_endpoint(kind: "str | ProviderKind", override: str | None = None, model: str = "") -> str:
    """Fully-qualified chat generation URL"""
    kind = ProviderKind.parse(kind)
    path = _PATHS.get(kind, _OPENAI_PATHS)[0]
    return base_url(kind, override) + path.format(model=model)


def models_endpoint(kind: "str | ProviderKind", override: str | None = None) -> str:
    """Fully-qualified model listing URL"""
    kind = ProviderKind.parse(kind)
    return base_url(kind, override) + _PATHS.get(kind, _OPENAI_PATHS)[1]
