"""Saved sign-in tokens, keyed by provider kind"""

import json
import logging
from pathlib import Path

from chatwire.config.config import CONFIG_DIR
from chatwire.provider.endpoints import ProviderKind

logger = logging.getLogger(__name__)


class CredentialStore:
    """API keys saved by ``chatwire copilot-login`` in a file only the owner can read"""

    FILENAME = "credentials.json"

    def __init__(self, config_dir: Path | None = None):
        self.path = (config_dir or CONFIG_DIR) / self.FILENAME

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable credentials file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2))
        self.path.chmod(0o600)

    def get_api_key(self, kind: "str | ProviderKind") -> str | None:
        """Saved key for a provider kind, or None"""
        entry = self._read().get(ProviderKind.parse(kind).value)
        api_key = entry.get("api_key") if isinstance(entry, dict) else None
        return api_key if isinstance(api_key, str) and api_key else None

    def set_api_key(self, kind: "str | ProviderKind", api_key: str):
        """Save a key, replacing any earlier one for the same kind"""
        kind = ProviderKind.parse(kind)
        data = self._read()
        data[kind.value] = {"api_key": api_key}
        self._write(data)
        logger.info(f"Saved credentials for {kind.value} to {self.path}")
