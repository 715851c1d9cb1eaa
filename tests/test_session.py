"""
Tests for the BrowserSession launch-or-reuse lifecycle and page sessions.

Discovery, launch and the WebSocket handshake are patched out; commands run
through a real Transport over an in-memory channel.
"""
import os
from contextlib import contextmanager
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from devtools_transport.chrome.launcher import BrowserProcess
from devtools_transport.core.errors import (
    BrowserLaunchError,
    CDPProtocolError,
    CDPSessionError,
    CDPTimeoutError,
)
from devtools_transport.session import BrowserSession, SessionConfig
from tests.conftest import FakeChannel, start_transport

S = "devtools_transport.session"
WS_URL = "ws://127.0.0.1:9444/devtools/browser/6b1c"

TARGET_INFOS = [
    {"targetId": "A", "type": "page", "url": "https://example.com/a", "title": "A", "attached": False},
    {"targetId": "B", "type": "page", "url": "about:blank", "title": "", "attached": False},
    {"targetId": "C", "type": "service_worker", "url": "https://example.com/sw.js", "title": "", "attached": False},
]


def cdp_responder(message):
    results = {
        "Target.createTarget": {"targetId": "T1"},
        "Target.attachToTarget": {"sessionId": "S1"},
        "Target.getTargets": {"targetInfos": TARGET_INFOS},
        "Runtime.evaluate": {"result": {"type": "string", "value": "Example Domain"}},
    }
    return {"id": message["id"], "result": results.get(message["method"], {})}


def owned_process(port=9444):
    proc = MagicMock()
    proc.pid = 4242
    proc.poll.return_value = None
    return BrowserProcess(port=port, owned=True, process=proc)


@contextmanager
def patched_browser(channel, *, existing_port=None, executable="/usr/bin/chromium", launched=None):
    async def fake_connect(ws_url, connect_timeout=None, **kwargs):
        return start_transport(channel, default_timeout=kwargs.get("default_timeout"))

    with patch(f"{S}.detect_existing_port", AsyncMock(return_value=existing_port)) as detect, \
            patch(f"{S}.wait_ready", AsyncMock(return_value=WS_URL)) as ready, \
            patch(f"{S}.Transport.connect", side_effect=fake_connect) as connect, \
            patch(f"{S}.find_chrome_executable", return_value=executable), \
            patch(f"{S}.allocate_port", return_value=9444), \
            patch(f"{S}.launch", return_value=launched or owned_process()) as launch:
        yield SimpleNamespace(detect=detect, ready=ready, connect=connect, launch=launch)


@pytest.fixture
def config(tmp_path):
    return SessionConfig(profile_dir=str(tmp_path / "profile"), command_timeout=1.0)


@pytest.fixture
def cdp_channel():
    return FakeChannel(responder=cdp_responder)


# =============================================================================
# Lifecycle
# =============================================================================

class TestLifecycle:
    """Launch-or-reuse decisions and teardown."""

    @pytest.mark.asyncio
    async def test_reuses_existing_browser(self, config, cdp_channel):
        """A responding browser on the profile is borrowed, never spawned."""
        with patched_browser(cdp_channel, existing_port=9333) as mocks:
            browser = BrowserSession(config)
            await browser.start()

            mocks.detect.assert_awaited_once()
            mocks.launch.assert_not_called()
            assert mocks.ready.await_args.args[0] == 9333
            assert mocks.ready.await_args.kwargs["process"] is None
            assert browser.port == 9333
            assert not browser.owned
            assert browser.ws_url == WS_URL

            await browser.stop()

        assert "Browser.close" not in cdp_channel.methods()
        assert cdp_channel.closed

    @pytest.mark.asyncio
    async def test_launches_when_nothing_running(self, config, cdp_channel):
        process = owned_process()
        with patched_browser(cdp_channel, launched=process) as mocks:
            async with BrowserSession(config) as browser:
                assert browser.owned
                assert browser.port == 9444
                args, kwargs = mocks.launch.call_args
                assert args == ("/usr/bin/chromium", 9444, config.profile_dir, [])
                assert kwargs == {"headless": False, "start_url": "about:blank"}
                assert mocks.ready.await_args.kwargs["process"] is process

        assert "Browser.close" in cdp_channel.methods()
        process.process.terminate.assert_called_once()

    @pytest.mark.asyncio
    async def test_profile_dir_is_created(self, config, cdp_channel):
        with patched_browser(cdp_channel, existing_port=9333):
            async with BrowserSession(config):
                pass
        assert os.path.isdir(config.profile_dir)

    @pytest.mark.asyncio
    async def test_reuse_disabled(self, config, cdp_channel):
        config.reuse_existing = False
        with patched_browser(cdp_channel, existing_port=9333) as mocks:
            async with BrowserSession(config) as browser:
                assert browser.owned
            mocks.detect.assert_not_called()
            mocks.launch.assert_called_once()

    @pytest.mark.asyncio
    async def test_explicit_chrome_path(self, config, cdp_channel):
        config.chrome_path = "/opt/chrome/chrome"
        with patched_browser(cdp_channel, executable=None) as mocks:
            async with BrowserSession(config):
                pass
            assert mocks.launch.call_args.args[0] == "/opt/chrome/chrome"

    @pytest.mark.asyncio
    async def test_no_executable(self, config, cdp_channel):
        with patched_browser(cdp_channel, executable=None) as mocks:
            with pytest.raises(BrowserLaunchError):
                await BrowserSession(config).start()
            mocks.launch.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_readiness_terminates_owned_browser(self, config, cdp_channel):
        process = owned_process()
        with patched_browser(cdp_channel, launched=process) as mocks:
            mocks.ready.side_effect = CDPTimeoutError("not ready", timeout=30.0)
            browser = BrowserSession(config)
            with pytest.raises(CDPTimeoutError):
                await browser.start()

        process.process.terminate.assert_called_once()
        with pytest.raises(CDPSessionError):
            browser.transport

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, config, cdp_channel):
        with patched_browser(cdp_channel, existing_port=9333):
            browser = BrowserSession(config)
            await browser.start()
            await browser.stop()
            await browser.stop()
        assert browser.process is None

    def test_transport_before_start(self, config):
        with pytest.raises(CDPSessionError):
            BrowserSession(config).transport


# =============================================================================
# Pages and targets
# =============================================================================

class TestPages:

    @pytest.mark.asyncio
    async def test_new_page_attaches_and_enables_domains(self, config, cdp_channel):
        with patched_browser(cdp_channel, existing_port=9333):
            async with BrowserSession(config) as browser:
                page = await browser.new_page("https://example.com")

                assert page.target_id == "T1"
                assert page.session_id == "S1"
                assert cdp_channel.methods() == [
                    "Target.createTarget",
                    "Target.attachToTarget",
                    "Page.enable",
                    "Runtime.enable",
                    "DOM.enable",
                    "Network.enable",
                ]
                assert cdp_channel.sent[0]["params"] == {"url": "https://example.com"}
                assert cdp_channel.sent[1]["params"] == {"targetId": "T1", "flatten": True}
                assert all(m["sessionId"] == "S1" for m in cdp_channel.sent[2:])
                assert browser.registry.get_session("S1").target_id == "T1"
                assert browser.pages == [page]

        close = [m for m in cdp_channel.sent if m["method"] == "Target.closeTarget"]
        assert close[0]["params"] == {"targetId": "T1"}

    @pytest.mark.asyncio
    async def test_evaluate(self, config, cdp_channel):
        with patched_browser(cdp_channel, existing_port=9333):
            async with BrowserSession(config) as browser:
                page = await browser.new_page()
                assert await page.evaluate("document.title") == "Example Domain"

        evaluate = next(m for m in cdp_channel.sent if m["method"] == "Runtime.evaluate")
        assert evaluate["params"] == {
            "expression": "document.title",
            "returnByValue": True,
            "awaitPromise": True,
        }
        assert evaluate["sessionId"] == "S1"

    @pytest.mark.asyncio
    async def test_evaluate_exception(self, config):
        def responder(message):
            if message["method"] == "Runtime.evaluate":
                return {"id": message["id"], "result": {
                    "result": {"type": "object", "subtype": "error"},
                    "exceptionDetails": {
                        "text": "Uncaught",
                        "exception": {"description": "ReferenceError: foo is not defined"},
                    },
                }}
            return cdp_responder(message)

        channel = FakeChannel(responder=responder)
        with patched_browser(channel, existing_port=9333):
            async with BrowserSession(config) as browser:
                page = await browser.new_page()
                with pytest.raises(CDPProtocolError, match="ReferenceError"):
                    await page.evaluate("foo")

    @pytest.mark.asyncio
    async def test_close_targets_by_url(self, config, cdp_channel):
        with patched_browser(cdp_channel, existing_port=9333):
            async with BrowserSession(config) as browser:
                closed = await browser.close_targets("example.com")

                assert closed == 1
                close = [m for m in cdp_channel.sent if m["method"] == "Target.closeTarget"]
                assert [m["params"]["targetId"] for m in close] == ["A"]
                assert browser.registry.get_target("A") is None
                assert browser.registry.get_target("B") is not None

    @pytest.mark.asyncio
    async def test_close_targets_logs_failures(self, config):
        def responder(message):
            if message["method"] == "Target.closeTarget":
                return {"id": message["id"], "error": {"code": -32000, "message": "No target with given id"}}
            return cdp_responder(message)

        channel = FakeChannel(responder=responder)
        with patched_browser(channel, existing_port=9333):
            async with BrowserSession(config) as browser:
                assert await browser.close_targets("example.com") == 0

    @pytest.mark.asyncio
    async def test_close_target_marks_page_closed(self, config, cdp_channel):
        with patched_browser(cdp_channel, existing_port=9333):
            async with BrowserSession(config) as browser:
                page = await browser.new_page()
                await browser.close_target(page.target_id)

                assert page.closed
                await page.close()

        assert cdp_channel.methods().count("Target.closeTarget") == 1

    @pytest.mark.asyncio
    async def test_page_close_is_idempotent(self, config, cdp_channel):
        with patched_browser(cdp_channel, existing_port=9333):
            async with BrowserSession(config) as browser:
                page = await browser.new_page()
                await page.close()
                await page.close()
                assert browser.pages == []

        assert cdp_channel.methods().count("Target.closeTarget") == 1


# =============================================================================
# Configuration
# =============================================================================

class TestSessionConfig:

    def test_defaults(self):
        config = SessionConfig(profile_dir="/tmp/profile")
        assert config.host == "127.0.0.1"
        assert config.command_timeout == 30.0
        assert config.domains == ["Page", "Runtime", "DOM", "Network"]
        assert config.reuse_existing

    def test_from_env(self):
        environ = {
            "DEVTOOLS_PROFILE_DIR": "/srv/profile",
            "DEVTOOLS_HEADLESS": "true",
            "DEVTOOLS_DEBUG": "0",
        }
        config = SessionConfig.from_env(environ, command_timeout=5.0)
        assert config.profile_dir == "/srv/profile"
        assert config.headless
        assert not config.debug
        assert config.command_timeout == 5.0
