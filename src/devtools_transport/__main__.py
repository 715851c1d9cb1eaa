#!/usr/bin/env python3
"""
Start (or reuse) a debuggable browser and open a page through the transport.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Optional

from devtools_transport.core.errors import DevToolsError
from devtools_transport.log import setup_logging
from devtools_transport.session import BrowserSession, SessionConfig


async def run(args: argparse.Namespace) -> dict:
    overrides = {
        "headless": args.headless or None,
        "debug": args.debug or None,
        "profile_dir": args.profile,
        "chrome_path": args.chrome_path,
        "ready_timeout": args.timeout,
        "connect_timeout": args.timeout,
        "command_timeout": args.timeout,
        "reuse_existing": False if args.no_reuse else None,
    }
    config = SessionConfig.from_env(**{k: v for k, v in overrides.items() if v is not None})

    async with BrowserSession(config) as browser:
        page = await browser.new_page(args.url)
        info = {
            "port": browser.port,
            "owned": browser.owned,
            "webSocketDebuggerUrl": browser.ws_url,
            "targetId": page.target_id,
            "sessionId": page.session_id,
            "profileDir": config.profile_dir,
        }
        if args.json:
            print(json.dumps(info, indent=2))
        else:
            print(f"🚀 Browser on port {info['port']} ({'launched' if info['owned'] else 'reused'})")
            print(f"   Debugger:  {info['webSocketDebuggerUrl']}")
            print(f"   Target:    {info['targetId']}")
            print(f"   Session:   {info['sessionId']}")

        if args.keep_open:
            print("   Press Ctrl+C to stop", file=sys.stderr)
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                pass
        return info


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="devtools-transport",
        description="Launch or reuse a Chrome with remote debugging and open a page.",
    )
    parser.add_argument("--url", default="about:blank", help="Page to open (default: about:blank).")
    parser.add_argument("--profile", help="Browser profile directory (default: DEVTOOLS_PROFILE_DIR or XDG data dir).")
    parser.add_argument("--chrome-path", help="Browser executable (default: auto-detect).")
    parser.add_argument("--headless", action="store_true", help="Launch without a visible window.")
    parser.add_argument("--no-reuse", action="store_true", help="Always launch a new browser.")
    parser.add_argument("--timeout", type=float, default=None, help="Readiness/connect/command timeout in seconds.")
    parser.add_argument("--json", action="store_true", help="Print session details as JSON.")
    parser.add_argument("--keep-open", action="store_true", help="Keep the session open until Ctrl+C.")
    parser.add_argument("--debug", action="store_true", help="Log protocol traffic.")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> bool:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    setup_logging(debug=args.debug)
    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        return True
    except DevToolsError as e:
        print(f"❌ {e}", file=sys.stderr)
        return False
    return True


def cli() -> None:
    sys.exit(0 if main() else 1)


if __name__ == "__main__":
    cli()
