"""
Browser executable discovery and default profile location.
"""
import os
import shutil
import sys
from typing import Dict, List, Mapping, Optional

CHROME_PATH_ENV_VARS = ("DEVTOOLS_CHROME_PATH", "CHROME_PATH")
PROFILE_DIR_ENV_VAR = "DEVTOOLS_PROFILE_DIR"

CHROME_CANDIDATES: Dict[str, List[str]] = {
    "darwin": [
        "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
        "/Applications/Google Chrome Canary.app/Contents/MacOS/Google Chrome Canary",
        "/Applications/Google Chrome Beta.app/Contents/MacOS/Google Chrome Beta",
        "/Applications/Chromium.app/Contents/MacOS/Chromium",
        "/Applications/Microsoft Edge.app/Contents/MacOS/Microsoft Edge",
    ],
    "win32": [
        "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe",
        "C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe",
        "C:\\Program Files\\Microsoft\\Edge\\Application\\msedge.exe",
    ],
    "default": [
        "/usr/bin/google-chrome",
        "/usr/bin/google-chrome-stable",
        "/usr/bin/chromium",
        "/usr/bin/chromium-browser",
        "/usr/bin/microsoft-edge",
    ],
}

# Looked up on PATH when none of the absolute candidates exist
CHROME_NAMES = [
    "google-chrome",
    "google-chrome-stable",
    "chromium",
    "chromium-browser",
    "microsoft-edge",
]


def candidates_for_platform(platform: Optional[str] = None) -> List[str]:
    """Ordered executable candidates for ``platform`` (defaults to ``sys.platform``)."""
    platform = platform or sys.platform
    if platform in CHROME_CANDIDATES:
        return list(CHROME_CANDIDATES[platform])
    return list(CHROME_CANDIDATES["default"])


def find_chrome_executable(environ: Optional[Mapping[str, str]] = None,
                           platform: Optional[str] = None) -> Optional[str]:
    """
    Find an installed Chrome/Chromium/Edge executable.

    An existing path in ``DEVTOOLS_CHROME_PATH`` or ``CHROME_PATH`` wins;
    otherwise the platform's candidate list is searched in order.

    Returns:
        The executable path, or None if nothing was found.
    """
    environ = os.environ if environ is None else environ
    for var in CHROME_PATH_ENV_VARS:
        override = (environ.get(var) or "").strip()
        if override and os.path.exists(override):
            return override

    platform = platform or sys.platform
    for candidate in candidates_for_platform(platform):
        if os.path.exists(candidate):
            return candidate

    if platform != "win32":
        for name in CHROME_NAMES:
            path = shutil.which(name)
            if path:
                return path
    return None


def default_profile_dir(environ: Optional[Mapping[str, str]] = None) -> str:
    """Profile directory used when the caller does not supply one."""
    environ = os.environ if environ is None else environ
    override = (environ.get(PROFILE_DIR_ENV_VAR) or "").strip()
    if override:
        return override
    base = environ.get("XDG_DATA_HOME") or os.path.join(os.path.expanduser("~"), ".local", "share")
    return os.path.join(base, "devtools-transport", "profile")
