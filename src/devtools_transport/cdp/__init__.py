"""
CDP Module - DevTools Protocol control channel and target tracking.
"""
from devtools_transport.cdp.transport import EventListener, PendingCall, Transport
from devtools_transport.cdp.targets import TargetRegistry

__all__ = [
    "Transport",
    "PendingCall",
    "EventListener",
    "TargetRegistry",
]
