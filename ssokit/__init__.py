"""ssokit - OAuth2/OpenID Connect session lifecycle for client applications.

Establishes a session through a browser authorization code flow,
persists it, keeps it fresh across network outages and ends it with a
browser logout.
"""

from __future__ import annotations

from .browser import BrowserPresenter, BrowserSession, PresentationListener, SystemBrowserPresenter
from .config import (
    LogSettings,
    OIDCSettings,
    SSOKitSettings,
    StorageSettings,
    clear_settings,
    get_settings,
    reload_settings,
)
from .delegates import DelegateRegistry, SessionDelegate
from .exceptions import (
    AuthenticationError,
    ConfigLoadError,
    ConfigurationError,
    ErrorCode,
    IdTokenValidateError,
    InvalidHostIntegrationError,
    LoginFlowError,
    LoginFlowErrorKind,
    LogoutNetworkError,
    LogoutNoEndSessionURLError,
    LogoutServerError,
    NoSessionToRefreshError,
    RefreshNetworkError,
    RefreshOAuthError,
    RefreshServerError,
    SessionError,
    SSOKitError,
    TokenExchangeError,
    TokenExchangeErrorKind,
    TokenRequestError,
    UnknownSessionError,
)
from .flow import EndSessionAuthorizationFlow, LoginAuthorizationFlow, RedirectHost, urls_match
from .log import enable_debug, get_logger, set_level
from .manager import SessionManager
from .pkce import PKCEChallenge
from .providers import HttpxOIDCClient, OIDCClient
from .reachability import ManualReachability, PollingReachability, Reachability
from .session import Session
from .session_check import DefaultSessionCheckUICoordinator, SessionCheckUICoordinator
from .storage import (
    KeyringSessionStorage,
    MemorySessionStorage,
    SessionStorage,
    get_session_storage,
    reset_session_storage,
)
from .types import (
    AcrValue,
    EndSessionResolution,
    IDTokenClaims,
    LoginState,
    OAuthScope,
    ServiceConfiguration,
    SessionEvent,
    SessionStatus,
    TokenSet,
)
from .validation import TokenValidator


__version__ = "0.1.0"

__all__ = [
    "AcrValue",
    "AuthenticationError",
    "BrowserPresenter",
    "BrowserSession",
    "ConfigLoadError",
    "ConfigurationError",
    "DefaultSessionCheckUICoordinator",
    "DelegateRegistry",
    "EndSessionAuthorizationFlow",
    "EndSessionResolution",
    "ErrorCode",
    "HttpxOIDCClient",
    "IDTokenClaims",
    "IdTokenValidateError",
    "InvalidHostIntegrationError",
    "KeyringSessionStorage",
    "LogSettings",
    "LoginAuthorizationFlow",
    "LoginFlowError",
    "LoginFlowErrorKind",
    "LoginState",
    "LogoutNetworkError",
    "LogoutNoEndSessionURLError",
    "LogoutServerError",
    "ManualReachability",
    "MemorySessionStorage",
    "NoSessionToRefreshError",
    "OAuthScope",
    "OIDCClient",
    "OIDCSettings",
    "PKCEChallenge",
    "PollingReachability",
    "PresentationListener",
    "Reachability",
    "RedirectHost",
    "RefreshNetworkError",
    "RefreshOAuthError",
    "RefreshServerError",
    "SSOKitError",
    "SSOKitSettings",
    "ServiceConfiguration",
    "Session",
    "SessionCheckUICoordinator",
    "SessionDelegate",
    "SessionError",
    "SessionEvent",
    "SessionManager",
    "SessionStatus",
    "SessionStorage",
    "StorageSettings",
    "SystemBrowserPresenter",
    "TokenExchangeError",
    "TokenExchangeErrorKind",
    "TokenRequestError",
    "TokenSet",
    "TokenValidator",
    "UnknownSessionError",
    "__version__",
    "clear_settings",
    "enable_debug",
    "get_logger",
    "get_session_storage",
    "get_settings",
    "reload_settings",
    "reset_session_storage",
    "set_level",
    "urls_match",
]
