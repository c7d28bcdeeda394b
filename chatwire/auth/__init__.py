"""Authentication module for chatwire"""

from .copilot_oauth import CopilotOAuth, CopilotToken, DeviceFlowState
from .credentials import CredentialStore

__all__ = ["CopilotOAuth", "CopilotToken", "DeviceFlowState", "CredentialStore"]
