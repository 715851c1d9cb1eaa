"""
Browser process launch and ownership-aware termination.
"""
from __future__ import annotations

import asyncio
import logging
import subprocess
import sys
from dataclasses import dataclass
from typing import List, Optional, Sequence

from devtools_transport.core.errors import BrowserLaunchError

logger = logging.getLogger("devtools_transport")

BASE_FLAGS = [
    "--no-first-run",
    "--no-default-browser-check",
]


def build_command(executable: str, port: int, profile_dir: str,
                  extra_args: Optional[Sequence[str]] = None, *,
                  headless: bool = False, start_url: Optional[str] = None) -> List[str]:
    """Command line for a debugging-enabled browser bound to ``profile_dir``."""
    args = [
        executable,
        f"--remote-debugging-port={port}",
        f"--user-data-dir={profile_dir}",
        *BASE_FLAGS,
    ]
    if extra_args:
        args.extend(extra_args)
    if headless:
        args.append("--headless=new")
    if start_url:
        args.append(start_url)
    return args


@dataclass
class BrowserProcess:
    """
    A browser this run is controlling.

    ``owned`` processes were spawned by us and are terminated on teardown.
    Borrowed ones (found already running) are never signalled.
    """

    port: int
    owned: bool
    process: Optional[subprocess.Popen] = None

    @classmethod
    def borrowed(cls, port: int) -> BrowserProcess:
        return cls(port=port, owned=False)

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process else None

    def poll(self) -> Optional[int]:
        """Exit code if the owned process has exited, else None."""
        if self.process is None:
            return None
        return self.process.poll()

    async def terminate(self, grace: float = 2.0) -> None:
        """
        Stop an owned browser: SIGTERM, then SIGKILL after ``grace`` seconds.

        Does nothing for borrowed or already-exited processes.
        """
        if not self.owned or self.process is None:
            return
        proc = self.process
        if proc.poll() is not None:
            return

        logger.info(f"Terminating browser process (PID: {proc.pid})")
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(asyncio.to_thread(proc.wait), timeout=grace)
            return
        except asyncio.TimeoutError:
            logger.warning(f"Browser did not exit within {grace}s, killing (PID: {proc.pid})")

        try:
            proc.kill()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(asyncio.to_thread(proc.wait), timeout=grace)
        except asyncio.TimeoutError:
            logger.error(f"Browser process {proc.pid} survived SIGKILL")


def _detach_kwargs() -> dict:
    if sys.platform == "win32":
        flags = getattr(subprocess, "DETACHED_PROCESS", 0) | getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)
        return {"creationflags": flags}
    return {"start_new_session": True}


def launch(executable: str, port: int, profile_dir: str,
           extra_args: Optional[Sequence[str]] = None, *,
           headless: bool = False, start_url: Optional[str] = None) -> BrowserProcess:
    """
    Spawn a detached browser with remote debugging on ``port``.

    Output is discarded and readiness is not awaited; use ``wait_ready``.

    Raises:
        BrowserLaunchError: The executable is missing or could not be started.
    """
    if not executable:
        raise BrowserLaunchError(
            "No browser executable given",
            executable=executable,
            method="launch",
        )

    args = build_command(executable, port, profile_dir, extra_args,
                         headless=headless, start_url=start_url)
    try:
        process = subprocess.Popen(
            args,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            **_detach_kwargs(),
        )
    except OSError as e:
        raise BrowserLaunchError(
            f"Failed to start browser {executable}: {e}",
            executable=executable,
            method="launch",
        ) from e

    logger.info(f"Launched browser (PID: {process.pid}, port {port}, profile: {profile_dir})")
    return BrowserProcess(port=port, owned=True, process=process)
