"""
Browser Session - Launch-or-reuse lifecycle around a single Transport.

This module wires the locator, port allocator, existing-session detector,
launcher and readiness waiter together, then hands out page sessions that
route commands through the shared control channel.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional

from devtools_transport.cdp.targets import TargetRegistry
from devtools_transport.cdp.transport import EventListener, Transport
from devtools_transport.chrome.discovery import detect_existing_port, fetch_version, wait_ready
from devtools_transport.chrome.launcher import BrowserProcess, launch
from devtools_transport.chrome.locator import default_profile_dir, find_chrome_executable
from devtools_transport.chrome.ports import allocate_port
from devtools_transport.core.errors import (
    BrowserLaunchError,
    CDPProtocolError,
    CDPSessionError,
    DevToolsError,
)
from devtools_transport.core.models import TargetInfo, VersionInfo

logger = logging.getLogger("devtools_transport")

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(environ: Mapping[str, str], name: str) -> bool:
    return (environ.get(name) or "").strip().lower() in _TRUTHY


@dataclass
class SessionConfig:
    """Configuration options for a BrowserSession."""

    profile_dir: str = field(default_factory=default_profile_dir)
    chrome_path: Optional[str] = None
    host: str = "127.0.0.1"
    ready_timeout: float = 30.0
    connect_timeout: float = 30.0
    command_timeout: Optional[float] = 30.0
    probe_timeout: float = 2.0
    poll_interval: float = 0.2
    kill_grace: float = 2.0
    start_url: str = "about:blank"
    headless: bool = False
    extra_args: List[str] = field(default_factory=list)
    reuse_existing: bool = True
    domains: List[str] = field(default_factory=lambda: ["Page", "Runtime", "DOM", "Network"])
    debug: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> SessionConfig:
        """
        Build a config from ``DEVTOOLS_*`` environment variables.

        Keyword overrides take precedence over the environment.
        """
        environ = os.environ if environ is None else environ
        config = cls(
            profile_dir=default_profile_dir(environ),
            headless=_env_flag(environ, "DEVTOOLS_HEADLESS"),
            debug=_env_flag(environ, "DEVTOOLS_DEBUG"),
        )
        return replace(config, **overrides) if overrides else config


class PageSession:
    """
    One attached page target.

    Commands sent through a page are routed with its session id over the
    browser-wide transport.
    """

    def __init__(self, browser: BrowserSession, target_id: str, session_id: str):
        self.browser = browser
        self.target_id = target_id
        self.session_id = session_id
        self.closed = False

    def __repr__(self) -> str:
        return f"PageSession(target_id={self.target_id!r}, session_id={self.session_id!r})"

    async def send(self, method: str, params: Optional[Dict[str, Any]] = None, *,
                   timeout: Optional[float] = None) -> Dict[str, Any]:
        return await self.browser.transport.send(
            method, params, session_id=self.session_id, timeout=timeout,
        )

    async def evaluate(self, expression: str, *, await_promise: bool = True,
                       timeout: Optional[float] = None) -> Any:
        """
        Evaluate a JavaScript expression in the page and return its value.

        Raises:
            CDPProtocolError: The expression threw.
        """
        result = await self.send("Runtime.evaluate", {
            "expression": expression,
            "returnByValue": True,
            "awaitPromise": await_promise,
        }, timeout=timeout)
        details = result.get("exceptionDetails")
        if details:
            exception = details.get("exception") or {}
            text = exception.get("description") or details.get("text") or "Evaluation failed"
            raise CDPProtocolError(
                text,
                cdp_error=details,
                session_id=self.session_id,
                target_id=self.target_id,
                method="Runtime.evaluate",
            )
        return result.get("result", {}).get("value")

    async def close(self, timeout: Optional[float] = 5.0) -> None:
        """Close the page's target. Safe to call twice."""
        if self.closed:
            return
        self.closed = True
        await self.browser.close_target(self.target_id, timeout=timeout)


class BrowserSession:
    """
    Launch-or-reuse browser session.

    Reuses a debugging-enabled browser that already owns the profile
    directory, otherwise launches one. Only a browser launched here is shut
    down on ``stop()``.

    Usage:
        async with BrowserSession(SessionConfig(profile_dir="/tmp/profile")) as browser:
            page = await browser.new_page("https://example.com")
            title = await page.evaluate("document.title")
    """

    def __init__(self, config: Optional[SessionConfig] = None):
        self.config = config or SessionConfig()
        self.registry = TargetRegistry()
        self._transport: Optional[Transport] = None
        self._process: Optional[BrowserProcess] = None
        self._pages: Dict[str, PageSession] = {}
        self._ws_url: Optional[str] = None

    async def __aenter__(self) -> BrowserSession:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    @property
    def transport(self) -> Transport:
        if self._transport is None or self._transport.closed:
            raise CDPSessionError(
                "Browser session not connected. Call start() or use async context manager.",
                method="transport",
            )
        return self._transport

    @property
    def process(self) -> Optional[BrowserProcess]:
        return self._process

    @property
    def port(self) -> Optional[int]:
        return self._process.port if self._process else None

    @property
    def owned(self) -> bool:
        return bool(self._process and self._process.owned)

    @property
    def ws_url(self) -> Optional[str]:
        return self._ws_url

    @property
    def pages(self) -> List[PageSession]:
        return list(self._pages.values())

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """
        Attach to the profile's running browser or launch a new one, then
        open the control channel.
        """
        if self._transport is not None:
            return
        config = self.config
        os.makedirs(config.profile_dir, exist_ok=True)

        process = await self._acquire_process()
        try:
            self._ws_url = await wait_ready(
                process.port,
                config.ready_timeout,
                host=config.host,
                interval=config.poll_interval,
                process=process if process.owned else None,
            )
            self._transport = await Transport.connect(
                self._ws_url,
                config.connect_timeout,
                default_timeout=config.command_timeout,
                debug=config.debug,
            )
        except BaseException:
            # Never leave a browser we spawned running behind a failed start
            await process.terminate(config.kill_grace)
            raise

        self._process = process
        self.registry.bind(self._transport)
        logger.info(
            f"Browser session started ({'owned' if process.owned else 'reused'}, port {process.port})"
        )

    async def _acquire_process(self) -> BrowserProcess:
        config = self.config
        if config.reuse_existing:
            port = await detect_existing_port(
                config.profile_dir, host=config.host, timeout=config.probe_timeout,
            )
            if port is not None:
                logger.info(f"Reusing browser (port {port})")
                return BrowserProcess.borrowed(port)

        executable = config.chrome_path or find_chrome_executable()
        if not executable:
            raise BrowserLaunchError(
                "Chrome/Chromium not found. Install it or set DEVTOOLS_CHROME_PATH.",
                method="BrowserSession.start",
            )
        port = allocate_port(config.host)
        logger.info(f"Launching browser (profile: {config.profile_dir})")
        return launch(
            executable,
            port,
            config.profile_dir,
            config.extra_args,
            headless=config.headless,
            start_url=config.start_url,
        )

    async def stop(self) -> None:
        """
        Close opened pages, shut down an owned browser and release the
        channel. Borrowed browsers are left running. Idempotent.
        """
        transport = self._transport
        if transport is not None:
            for page in list(self._pages.values()):
                try:
                    await page.close(timeout=5.0)
                except DevToolsError as e:
                    logger.warning(f"Failed to close page {page.target_id}: {e}")
            if self.owned and not transport.closed:
                try:
                    await transport.send("Browser.close", timeout=5.0)
                except DevToolsError as e:
                    logger.debug(f"Browser.close failed: {e}")
            self.registry.unbind()
            await transport.close()
            self._transport = None
        self._pages.clear()

        if self._process is not None:
            await self._process.terminate(self.config.kill_grace)
            self._process = None
        logger.info("Browser session stopped")

    # =========================================================================
    # Targets
    # =========================================================================

    async def version(self) -> VersionInfo:
        """The browser's ``/json/version`` information."""
        if self.port is None:
            raise CDPSessionError("Browser session not started", method="version")
        return await fetch_version(self.port, host=self.config.host, timeout=self.config.probe_timeout)

    async def get_targets(self) -> List[TargetInfo]:
        result = await self.transport.send("Target.getTargets")
        targets = [TargetInfo.from_cdp(info) for info in result.get("targetInfos", [])]
        for target in targets:
            self.registry.add_target(target)
        return targets

    async def close_target(self, target_id: str, *, timeout: Optional[float] = None) -> None:
        page = self._pages.pop(target_id, None)
        if page is not None:
            page.closed = True
        await self.transport.send("Target.closeTarget", {"targetId": target_id}, timeout=timeout)
        self.registry.remove_target(target_id)

    async def close_targets(self, url_contains: str) -> int:
        """
        Close page targets whose URL contains ``url_contains``.

        Failures are logged and skipped. Returns the number closed.
        """
        stale = [t for t in await self.get_targets() if t.type == "page" and url_contains in t.url]
        if stale:
            logger.info(f"Closing {len(stale)} stale tab(s) matching {url_contains!r}")
        closed = 0
        for target in stale:
            try:
                await self.close_target(target.target_id)
                closed += 1
            except DevToolsError as e:
                logger.warning(f"Failed to close target {target.target_id}: {e}")
        return closed

    async def new_page(self, url: str = "about:blank") -> PageSession:
        """
        Open a tab at ``url``, attach a flattened session and enable the
        configured domains on it.
        """
        transport = self.transport
        created = await transport.send("Target.createTarget", {"url": url})
        target_id = created["targetId"]
        attached = await transport.send("Target.attachToTarget", {
            "targetId": target_id,
            "flatten": True,
        })
        session_id = attached["sessionId"]

        page = PageSession(self, target_id, session_id)
        self._pages[target_id] = page
        self.registry.add_target(TargetInfo(target_id=target_id, type="page", url=url))
        self.registry.add_session(session_id, target_id)
        logger.info(
            "Attached to page target",
            extra={"session_id": session_id, "target_id": target_id},
        )

        for domain in self.config.domains:
            await page.send(f"{domain}.enable")
        return page

    def on(self, event_name: str, listener: EventListener) -> None:
        self.transport.on(event_name, listener)

    def off(self, event_name: str, listener: EventListener) -> None:
        if self._transport is not None:
            self._transport.off(event_name, listener)
