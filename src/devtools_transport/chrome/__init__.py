"""
Chrome Module - Locate, launch, discover and wait for debuggable browsers.
"""
from devtools_transport.chrome.discovery import (
    detect_existing_port,
    fetch_version,
    find_debug_ports_for_profile,
    probe_port,
    read_marker_port,
    wait_ready,
)
from devtools_transport.chrome.launcher import BrowserProcess, build_command, launch
from devtools_transport.chrome.locator import default_profile_dir, find_chrome_executable
from devtools_transport.chrome.ports import allocate_port

__all__ = [
    "find_chrome_executable",
    "default_profile_dir",
    "allocate_port",
    "read_marker_port",
    "find_debug_ports_for_profile",
    "detect_existing_port",
    "probe_port",
    "fetch_version",
    "wait_ready",
    "BrowserProcess",
    "build_command",
    "launch",
]
