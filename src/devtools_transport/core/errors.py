"""
DevTools Transport Error Taxonomy - Exception classes for the debugging transport.

Every failure surfaced by the transport, the discovery helpers and the
launcher derives from DevToolsError, so callers can layer their own retry
policy on top without catching unrelated exceptions.
"""
from typing import Optional


class DevToolsError(Exception):
    """Base exception for all devtools transport errors."""

    def __init__(self, message: str, session_id: Optional[str] = None,
                 target_id: Optional[str] = None, method: Optional[str] = None,
                 **context):
        super().__init__(message)
        self.message = message
        self.session_id = session_id
        self.target_id = target_id
        self.method = method
        self.context = context

    def __str__(self):
        parts = [self.message]
        if self.session_id:
            parts.append(f"session_id={self.session_id}")
        if self.target_id:
            parts.append(f"target_id={self.target_id}")
        if self.method:
            parts.append(f"method={self.method}")
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"context=({context_str})")
        return " | ".join(parts)


class CDPConnectionError(DevToolsError):
    """Raised when the control channel cannot be established."""
    pass


class CDPChannelClosedError(DevToolsError):
    """Raised for every outstanding call when the control channel closes."""
    pass


class CDPTimeoutError(DevToolsError):
    """
    Raised when a command or readiness wait exceeds its deadline.

    The remote side is never told to cancel, so a timed-out command may
    still have been executed.
    """

    def __init__(self, message: str, timeout: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.timeout = timeout


class CDPProtocolError(DevToolsError):
    """Raised when the browser answers a command with an error payload."""

    def __init__(self, message: str, code: Optional[int] = None,
                 cdp_error: Optional[dict] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.code = code
        self.cdp_error = cdp_error


class CDPSessionError(DevToolsError):
    """Raised when a browser session is used outside its lifecycle."""
    pass


class BrowserLaunchError(DevToolsError):
    """Raised when no browser executable is found or it cannot be spawned."""

    def __init__(self, message: str, executable: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.executable = executable
