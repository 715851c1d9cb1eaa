#!/usr/bin/env python3
"""
Basic Session Example

Launches Chrome (or reuses one already debugging the same profile), opens a
page and reads its title.

Prerequisites:
- Chrome or Chromium installed, or DEVTOOLS_CHROME_PATH pointing at one
"""
import asyncio

from devtools_transport import BrowserSession, SessionConfig, setup_logging


async def main():
    setup_logging()
    config = SessionConfig.from_env(headless=True)

    async with BrowserSession(config) as browser:
        print(f"Browser on port {browser.port} ({'launched' if browser.owned else 'reused'})")

        version = await browser.version()
        print(f"Version: {version.browser} (protocol {version.protocol_version})")

        # Log navigations on the page's session
        browser.on("Page.frameNavigated", lambda params: print(f"Navigated: {params['frame']['url']}"))

        page = await browser.new_page("https://example.com")
        await browser.transport.wait_for("Page.loadEventFired", timeout=15.0)

        title = await page.evaluate("document.title")
        print(f"Title: {title}")

        targets = await browser.get_targets()
        print(f"\nOpen targets: {len(targets)}")
        for target in targets:
            print(f"  [{target.type}] {target.url}")


if __name__ == "__main__":
    asyncio.run(main())
