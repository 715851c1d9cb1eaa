"""
DevTools Transport Models - Data classes describing the remote browser.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


@dataclass
class VersionInfo:
    """Payload of the ``/json/version`` debugging endpoint."""

    web_socket_debugger_url: str
    browser: str = ""
    protocol_version: str = ""
    user_agent: str = ""
    v8_version: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> VersionInfo:
        url = data.get("webSocketDebuggerUrl")
        return cls(
            web_socket_debugger_url=url if isinstance(url, str) else "",
            browser=data.get("Browser", ""),
            protocol_version=data.get("Protocol-Version", ""),
            user_agent=data.get("User-Agent", ""),
            v8_version=data.get("V8-Version", ""),
        )

    @property
    def has_debugger_url(self) -> bool:
        """True when the control-channel address is a usable WebSocket URL."""
        url = self.web_socket_debugger_url
        return url.startswith("ws://") or url.startswith("wss://")


@dataclass
class TargetInfo:
    """Information about a browser target (tab, worker, iframe...)."""

    target_id: str
    type: str
    url: str
    title: str = ""
    attached: bool = False
    browser_context_id: Optional[str] = None
    session_id: Optional[str] = None

    @classmethod
    def from_cdp(cls, data: Dict[str, Any]) -> TargetInfo:
        """Build from a CDP ``Target.TargetInfo`` object."""
        return cls(
            target_id=data["targetId"],
            type=data.get("type", "unknown"),
            url=data.get("url", ""),
            title=data.get("title", ""),
            attached=bool(data.get("attached", False)),
            browser_context_id=data.get("browserContextId"),
        )


class SessionStatus(Enum):
    ACTIVE = "active"
    DETACHED = "detached"


@dataclass
class SessionInfo:
    """A flattened CDP session attached to one target."""

    session_id: str
    target_id: str
    status: SessionStatus = SessionStatus.ACTIVE
    created_at: float = field(default_factory=time.time)
