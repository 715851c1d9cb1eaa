"""
Debugging endpoint discovery - readiness polling and existing-session detection.

Both helpers talk to ``GET http://<host>:<port>/json/version``. Routine
misses (no marker file, nothing listening, a malformed payload) are expected
outcomes here and are reported as ``None``/retries, not raised.
"""
import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, List, Optional, Sequence

import httpx
import psutil

from devtools_transport.core.errors import BrowserLaunchError, CDPTimeoutError
from devtools_transport.core.models import VersionInfo

logger = logging.getLogger("devtools_transport")

MARKER_FILE = "DevToolsActivePort"
PORT_FLAG = "--remote-debugging-port="
PROFILE_FLAG = "--user-data-dir="


@asynccontextmanager
async def _http_client(client: Optional[httpx.AsyncClient]) -> AsyncIterator[httpx.AsyncClient]:
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient() as owned:
        yield owned


def version_url(port: int, host: str = "127.0.0.1") -> str:
    return f"http://{host}:{port}/json/version"


async def fetch_version(port: int, *, host: str = "127.0.0.1", timeout: float = 2.0,
                        client: Optional[httpx.AsyncClient] = None) -> VersionInfo:
    """
    Fetch and parse ``/json/version``.

    Raises:
        httpx.HTTPError: Connection failure or a non-2xx response.
        ValueError: The body is not a JSON object.
    """
    async with _http_client(client) as http:
        response = await http.get(version_url(port, host), timeout=timeout, follow_redirects=True)
        response.raise_for_status()
        data = response.json()
    if not isinstance(data, dict):
        raise ValueError(f"Unexpected /json/version payload: {data!r}")
    return VersionInfo.from_dict(data)


async def probe_port(port: int, *, host: str = "127.0.0.1", timeout: float = 2.0,
                     client: Optional[httpx.AsyncClient] = None) -> bool:
    """True if the debugging endpoint on ``port`` answers with HTTP success."""
    try:
        async with _http_client(client) as http:
            response = await http.get(version_url(port, host), timeout=timeout, follow_redirects=True)
    except (httpx.HTTPError, OSError) as e:
        logger.debug(f"Debug port {port} did not respond: {e}")
        return False
    return response.is_success


async def wait_ready(port: int, timeout: float = 30.0, *, host: str = "127.0.0.1",
                     interval: float = 0.2, process: Optional[Any] = None,
                     client: Optional[httpx.AsyncClient] = None) -> str:
    """
    Poll the debugging endpoint until it advertises a control-channel URL.

    Individual poll failures are retried until ``timeout`` elapses.

    Args:
        port: Debugging port to poll.
        timeout: Overall deadline in seconds.
        interval: Delay between polls.
        process: Optional launched process (anything with ``poll()``); if it
            exits while we wait, fail immediately instead of polling on.

    Returns:
        The ``webSocketDebuggerUrl``.

    Raises:
        CDPTimeoutError: No successful poll before the deadline.
        BrowserLaunchError: ``process`` exited before becoming ready.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    last_error: Optional[str] = None
    attempts = 0

    async with _http_client(client) as http:
        while True:
            attempts += 1
            if process is not None and process.poll() is not None:
                raise BrowserLaunchError(
                    f"Browser exited with code {process.poll()} before debug port {port} was ready",
                    method="wait_ready",
                )
            remaining = deadline - loop.time()
            try:
                version = await fetch_version(port, host=host, timeout=max(min(remaining, 2.0), 0.05), client=http)
                if version.has_debugger_url:
                    logger.debug(f"Debug port {port} ready after {attempts} poll(s)")
                    return version.web_socket_debugger_url
                last_error = "missing webSocketDebuggerUrl"
            except (httpx.HTTPError, OSError, ValueError) as e:
                last_error = str(e) or type(e).__name__

            if loop.time() + interval >= deadline:
                break
            await asyncio.sleep(interval)

    raise CDPTimeoutError(
        f"Browser debug port {port} not ready after {timeout}s: {last_error}",
        timeout=timeout,
        method="wait_ready",
        port=port,
    )


# =============================================================================
# Existing-session detection
# =============================================================================


def read_marker_port(profile_dir: str) -> Optional[int]:
    """Port recorded in ``<profile_dir>/DevToolsActivePort``, if any."""
    marker = Path(profile_dir) / MARKER_FILE
    try:
        lines = marker.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError):
        return None
    if not lines:
        return None
    first = lines[0].strip()
    if not first.isdigit():
        return None
    port = int(first)
    return port if 0 < port < 65536 else None


def _normalize_path(path: str) -> str:
    path = path.strip().strip('"').strip("'")
    return os.path.normcase(os.path.realpath(os.path.expanduser(path))).rstrip(os.sep)


def match_debug_port(cmdline: Sequence[str], profile_dir: str) -> Optional[int]:
    """
    Port from a command line that targets ``profile_dir``.

    Both ``--remote-debugging-port=<n>`` and ``--user-data-dir=<profile_dir>``
    must be present as whole arguments; substring hits are not accepted.
    """
    wanted = _normalize_path(profile_dir)
    port: Optional[int] = None
    profile_matches = False
    for arg in cmdline:
        if not arg:
            continue
        if arg.startswith(PORT_FLAG):
            value = arg[len(PORT_FLAG):]
            if value.isdigit() and int(value) > 0:
                port = int(value)
        elif arg.startswith(PROFILE_FLAG):
            if _normalize_path(arg[len(PROFILE_FLAG):]) == wanted:
                profile_matches = True
    return port if profile_matches else None


def find_debug_ports_for_profile(profile_dir: str) -> List[int]:
    """Debug ports of running processes launched with ``profile_dir``."""
    ports: List[int] = []
    try:
        for proc in psutil.process_iter(["pid", "cmdline"]):
            cmdline = proc.info.get("cmdline") or []
            port = match_debug_port(cmdline, profile_dir)
            if port and port not in ports:
                logger.debug(f"Process {proc.info.get('pid')} uses profile on port {port}")
                ports.append(port)
    except psutil.Error as e:
        logger.debug(f"Process scan aborted: {e}")
    return ports


async def detect_existing_port(profile_dir: str, *, host: str = "127.0.0.1",
                               timeout: float = 2.0,
                               client: Optional[httpx.AsyncClient] = None) -> Optional[int]:
    """
    Find a running debugging-enabled browser that owns ``profile_dir``.

    Checks the profile's marker file first, then running processes. A port
    is only returned if its debugging endpoint responds.

    Returns:
        The port, or None if no live session was found.
    """
    async with _http_client(client) as http:
        port = read_marker_port(profile_dir)
        if port is not None:
            if await probe_port(port, host=host, timeout=timeout, client=http):
                logger.info(f"Found existing browser via {MARKER_FILE} (port {port})")
                return port
            logger.debug(f"Stale {MARKER_FILE} in {profile_dir} (port {port})")

        for port in await asyncio.to_thread(find_debug_ports_for_profile, profile_dir):
            if await probe_port(port, host=host, timeout=timeout, client=http):
                logger.info(f"Found existing browser via process table (port {port})")
                return port

    return None
