"""
Core module - Data models and errors.
"""
from devtools_transport.core.errors import (
    BrowserLaunchError,
    CDPChannelClosedError,
    CDPConnectionError,
    CDPProtocolError,
    CDPSessionError,
    CDPTimeoutError,
    DevToolsError,
)
from devtools_transport.core.models import SessionInfo, SessionStatus, TargetInfo, VersionInfo

__all__ = [
    "DevToolsError",
    "CDPConnectionError",
    "CDPChannelClosedError",
    "CDPTimeoutError",
    "CDPProtocolError",
    "CDPSessionError",
    "BrowserLaunchError",
    "SessionInfo",
    "SessionStatus",
    "TargetInfo",
    "VersionInfo",
]
