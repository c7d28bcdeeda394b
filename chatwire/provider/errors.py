"""Error types raised by providers, fetchers and the Copilot OAuth client"""


class ProviderError(Exception):
    """Base class for every failure surfaced by chatwire"""


class ConfigError(ProviderError):
    """A required credential or setting is missing. No request was sent."""


class NetworkError(ProviderError):
    """Connecting to or reading from the upstream failed"""


class UpstreamError(ProviderError):
    """The upstream answered with a non-2xx status"""

    def __init__(self, label: str, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"{label} {status_code}: {body}")


class ProtocolError(ProviderError):
    """The response body did not have the expected shape"""


class OAuthError(ProviderError):
    """The device-flow token endpoint returned an error code"""

    def __init__(self, code: str, description: str = ""):
        self.code = code
        self.description = description
        super().__init__(f"{code}:{description}")


class OAuthPending(OAuthError):
    """The user has not finished authorizing yet; poll again after the interval"""


class OAuthTransient(OAuthError):
    """Polling too fast; increase the interval and poll again"""


class OAuthTerminal(OAuthError):
    """The device code expired or the user denied access"""


_OAUTH_ERRORS = {
    "authorization_pending": OAuthPending,
    "slow_down": OAuthTransient,
}


def oauth_error(code: str, description: str = "") -> OAuthError:
    """Build the OAuthError subclass matching a token endpoint error code"""
    return _OAUTH_ERRORS.get(code, OAuthTerminal)(code, description)
