#!/usr/bin/env python3
"""
Raw Transport Example

Talks to an already running browser over the control channel directly,
without the session orchestrator.

Prerequisites:
- Chrome running with debugging enabled:
  google-chrome --remote-debugging-port=9222 --user-data-dir=/tmp/devtools-profile
"""
import asyncio

from devtools_transport import CDPTimeoutError, Transport, wait_ready


async def main():
    ws_url = await wait_ready(9222, timeout=10.0)
    print(f"Connecting to {ws_url}")

    async with await Transport.connect(ws_url, default_timeout=10.0) as transport:
        transport.on("Target.targetCreated", lambda params: print(f"Created: {params['targetInfo']['url']}"))
        await transport.send("Target.setDiscoverTargets", {"discover": True})

        version = await transport.send("Browser.getVersion")
        print(f"Product: {version['product']}")

        # Several commands in flight at once; replies are matched by id
        results = await asyncio.gather(
            transport.send("Target.getTargets"),
            transport.send("SystemInfo.getProcessInfo"),
            transport.send("Browser.getWindowForTarget"),
            return_exceptions=True,
        )
        for result in results:
            print(f"  {type(result).__name__}: {str(result)[:80]}")

        try:
            await transport.send("Runtime.evaluate", {"expression": "1"}, timeout=0.001)
        except CDPTimeoutError as e:
            print(f"Timed out as expected: {e}")


if __name__ == "__main__":
    asyncio.run(main())
