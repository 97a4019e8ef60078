"""Core building blocks shared by every codag command."""

from .api import ApiClient, Account, BackfillResult, Repo, Stats, WebhookResult
from .config import (
    DEFAULT_SERVER,
    CommandContext,
    EnvFile,
    TokenStore,
    get_codag_home,
    resolve_server,
)
from .errors import (
    APIError,
    CodagError,
    ConfigWriteError,
    DeviceCodeExpired,
    DeviceFlowError,
    DeviceFlowTimeout,
    NotLoggedInError,
    SilentError,
    TransportError,
    UpgradeError,
    silent,
)

__all__ = [
    # API
    "ApiClient",
    "Account",
    "BackfillResult",
    "Repo",
    "Stats",
    "WebhookResult",
    # Config
    "DEFAULT_SERVER",
    "CommandContext",
    "EnvFile",
    "TokenStore",
    "get_codag_home",
    "resolve_server",
    # Errors
    "APIError",
    "CodagError",
    "ConfigWriteError",
    "DeviceCodeExpired",
    "DeviceFlowError",
    "DeviceFlowTimeout",
    "NotLoggedInError",
    "SilentError",
    "TransportError",
    "UpgradeError",
    "silent",
]
