"""
DevTools Transport - Async Chrome DevTools Protocol transport and browser lifecycle.

This package provides one multiplexed control channel to a debuggable
browser, plus the helpers needed to find, launch or reuse that browser.

Usage:
    from devtools_transport import BrowserSession, SessionConfig

    async with BrowserSession(SessionConfig(profile_dir="/tmp/profile")) as browser:
        page = await browser.new_page("https://example.com")
        print(await page.evaluate("document.title"))

Low-level transport:
    from devtools_transport import Transport

    transport = await Transport.connect(ws_url)
    transport.on("Target.targetCreated", handler)
    result = await transport.send("Target.getTargets")
"""
from devtools_transport.cdp import PendingCall, TargetRegistry, Transport
from devtools_transport.chrome import (
    BrowserProcess,
    allocate_port,
    default_profile_dir,
    detect_existing_port,
    fetch_version,
    find_chrome_executable,
    launch,
    wait_ready,
)
from devtools_transport.core import (
    BrowserLaunchError,
    CDPChannelClosedError,
    CDPConnectionError,
    CDPProtocolError,
    CDPSessionError,
    CDPTimeoutError,
    DevToolsError,
    SessionInfo,
    SessionStatus,
    TargetInfo,
    VersionInfo,
)
from devtools_transport.log import setup_logging
from devtools_transport.session import BrowserSession, PageSession, SessionConfig

__version__ = "0.1.0"

__all__ = [
    # Session
    "BrowserSession",
    "PageSession",
    "SessionConfig",
    # Transport
    "Transport",
    "PendingCall",
    "TargetRegistry",
    # Browser process
    "BrowserProcess",
    "allocate_port",
    "default_profile_dir",
    "detect_existing_port",
    "fetch_version",
    "find_chrome_executable",
    "launch",
    "wait_ready",
    # Errors
    "DevToolsError",
    "CDPConnectionError",
    "CDPChannelClosedError",
    "CDPTimeoutError",
    "CDPProtocolError",
    "CDPSessionError",
    "BrowserLaunchError",
    # Models
    "SessionInfo",
    "SessionStatus",
    "TargetInfo",
    "VersionInfo",
    # Logging
    "setup_logging",
    # Version
    "__version__",
]
