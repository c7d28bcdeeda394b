"""Configuration for chatwire"""

from .config import Settings
from .schema import CopilotSettings, ProviderConfig, ProviderSettings

__all__ = ["Settings", "CopilotSettings", "ProviderConfig", "ProviderSettings"]
