"""
CDP Transport - One multiplexed control channel to a remote browser.

The transport owns a single WebSocket connection to the browser's debugging
endpoint. Any number of tasks may issue commands concurrently; each command
gets a fresh message id and a PendingCall, and the read loop matches
responses back to their caller by id. Messages without an id are push
events and are fanned out to the listeners registered for their method name.
"""
import asyncio
import inspect
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Set

import websockets
from websockets.asyncio.client import connect

from devtools_transport.core.errors import (
    CDPChannelClosedError,
    CDPConnectionError,
    CDPProtocolError,
    CDPTimeoutError,
)

logger = logging.getLogger("devtools_transport")

EventListener = Callable[[Dict[str, Any]], Any]


class PendingCall:
    """
    An in-flight command awaiting its response.

    The future is a one-shot completion slot. Response arrival, timer expiry
    and channel closure all race to settle it; the first one wins and every
    later attempt is a no-op.
    """

    __slots__ = ("message_id", "method", "session_id", "future", "timer")

    def __init__(self, message_id: int, method: str, session_id: Optional[str],
                 future: asyncio.Future):
        self.message_id = message_id
        self.method = method
        self.session_id = session_id
        self.future = future
        self.timer: Optional[asyncio.TimerHandle] = None

    @property
    def settled(self) -> bool:
        return self.future.done()

    def resolve(self, result: Any) -> bool:
        if self.future.done():
            return False
        self.cancel_timer()
        self.future.set_result(result)
        return True

    def reject(self, error: BaseException) -> bool:
        if self.future.done():
            return False
        self.cancel_timer()
        self.future.set_exception(error)
        return True

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class Transport:
    """
    Chrome DevTools Protocol control channel.

    The channel object only needs ``send(str)``, ``recv()`` and ``close()``
    coroutines, which is what a ``websockets`` client connection provides.

    Usage:
        transport = await Transport.connect(ws_url)
        transport.on("Target.targetCreated", print)
        result = await transport.send("Target.createTarget", {"url": "about:blank"})
        await transport.close()
    """

    def __init__(self, channel: Any, *, default_timeout: Optional[float] = 30.0,
                 debug: bool = False):
        self._channel = channel
        self.default_timeout = default_timeout
        self.debug = debug
        self._next_id = 0
        self._pending: Dict[int, PendingCall] = {}
        self._listeners: Dict[str, Set[EventListener]] = {}
        self._event_waiters: Set[asyncio.Future] = set()
        self._listener_tasks: Set[asyncio.Task] = set()
        self._reader: Optional[asyncio.Task] = None
        self._closed = False
        self._close_requested = False

    @classmethod
    async def connect(cls, ws_url: str, connect_timeout: Optional[float] = 30.0, *,
                      default_timeout: Optional[float] = 30.0, debug: bool = False,
                      max_size: Optional[int] = None) -> "Transport":
        """
        Open the control channel and start reading from it.

        Args:
            ws_url: The browser's ``webSocketDebuggerUrl``.
            connect_timeout: Seconds allowed for the opening handshake.
            default_timeout: Per-command timeout used when ``send`` is not
                given one. ``0`` or ``None`` waits indefinitely.
            debug: Log every command and response at DEBUG level.
            max_size: Maximum incoming frame size; ``None`` disables the limit.

        Raises:
            CDPConnectionError: The handshake failed or timed out.
        """
        logger.info(f"Connecting to browser via WebSocket: {ws_url}")
        try:
            channel = await connect(
                ws_url,
                open_timeout=connect_timeout or None,
                max_size=max_size,
            )
        except (asyncio.TimeoutError, TimeoutError) as e:
            raise CDPConnectionError(
                f"Timed out after {connect_timeout}s connecting to {ws_url}",
                method="connect",
            ) from e
        except Exception as e:
            raise CDPConnectionError(
                f"Failed to connect to browser WebSocket: {e}",
                method="connect",
            ) from e

        transport = cls(channel, default_timeout=default_timeout, debug=debug)
        transport.start()
        logger.info("WebSocket connection established")
        return transport

    def start(self) -> None:
        """Start the read loop. Called by ``connect``."""
        if self._reader is None:
            self._reader = asyncio.create_task(self._read_loop(), name="devtools-transport-reader")

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        """Number of commands still waiting for a response."""
        return len(self._pending)

    async def __aenter__(self) -> "Transport":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # =========================================================================
    # Commands
    # =========================================================================

    async def send(self, method: str, params: Optional[Dict[str, Any]] = None, *,
                   session_id: Optional[str] = None,
                   timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Send a command and wait for its response.

        Args:
            method: Protocol method, e.g. ``"Target.createTarget"``.
            params: Command parameters.
            session_id: Routing tag scoping the command to one attached target.
            timeout: Seconds to wait. ``None`` uses the transport default,
                ``0`` waits indefinitely.

        Returns:
            The ``result`` object of the response.

        Raises:
            CDPProtocolError: The browser answered with an error.
            CDPTimeoutError: No response arrived in time. The command may
                still complete remotely.
            CDPChannelClosedError: The channel closed before a response arrived.
        """
        if self._closed:
            raise CDPChannelClosedError(
                "Control channel is closed",
                session_id=session_id,
                method=method,
            )

        self._next_id += 1
        msg_id = self._next_id
        message: Dict[str, Any] = {"id": msg_id, "method": method, "params": params or {}}
        if session_id is not None:
            message["sessionId"] = session_id
        payload = json.dumps(message)

        if timeout is None:
            timeout = self.default_timeout

        loop = asyncio.get_running_loop()
        call = PendingCall(msg_id, method, session_id, loop.create_future())
        self._pending[msg_id] = call
        if timeout:
            call.timer = loop.call_later(timeout, self._expire, call, timeout)

        start_time = loop.time()
        if self.debug:
            logger.debug(
                f"CDP command: {method}",
                extra={
                    "method": method,
                    "params": params,
                    "session_id": session_id,
                    "message_id": msg_id,
                },
            )

        try:
            try:
                await self._channel.send(payload)
            except websockets.exceptions.ConnectionClosed:
                call.reject(CDPChannelClosedError(
                    "Control channel closed while sending",
                    session_id=session_id,
                    method=method,
                ))
            except Exception as e:
                error = CDPConnectionError(
                    f"Failed to write command {method}: {e}",
                    session_id=session_id,
                    method=method,
                )
                error.__cause__ = e
                call.reject(error)

            result = await call.future

            if self.debug:
                duration = loop.time() - start_time
                logger.debug(
                    f"CDP response: {method} (duration={duration:.3f}s)",
                    extra={
                        "method": method,
                        "session_id": session_id,
                        "message_id": msg_id,
                        "duration_ms": duration * 1000,
                    },
                )
            return result
        finally:
            call.cancel_timer()
            if self._pending.get(msg_id) is call:
                del self._pending[msg_id]

    def _expire(self, call: PendingCall, timeout: float) -> None:
        if self._pending.get(call.message_id) is call:
            del self._pending[call.message_id]
        if call.reject(CDPTimeoutError(
            f"CDP command {call.method} timed out after {timeout:.3f}s",
            timeout=timeout,
            session_id=call.session_id,
            method=call.method,
        )):
            logger.warning(
                f"CDP command timeout: {call.method} after {timeout:.3f}s",
                extra={
                    "method": call.method,
                    "session_id": call.session_id,
                    "message_id": call.message_id,
                },
            )

    # =========================================================================
    # Events
    # =========================================================================

    def on(self, event_name: str, listener: EventListener) -> None:
        """
        Register ``listener`` for every push event named ``event_name``.

        The listener is called with the event's ``params``. If it returns an
        awaitable, that awaitable is scheduled as a task.
        """
        self._listeners.setdefault(event_name, set()).add(listener)

    def off(self, event_name: str, listener: EventListener) -> None:
        """Remove a listener. Does nothing if it was not registered."""
        listeners = self._listeners.get(event_name)
        if not listeners:
            return
        listeners.discard(listener)
        if not listeners:
            del self._listeners[event_name]

    def listener_count(self, event_name: str) -> int:
        return len(self._listeners.get(event_name, ()))

    async def wait_for(self, event_name: str, *,
                       predicate: Optional[Callable[[Dict[str, Any]], bool]] = None,
                       timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Wait for the next ``event_name`` push event matching ``predicate``.

        Raises:
            CDPTimeoutError: No matching event within ``timeout`` seconds.
            CDPChannelClosedError: The channel closed first.
        """
        if self._closed:
            raise CDPChannelClosedError("Control channel is closed", method=event_name)

        future = asyncio.get_running_loop().create_future()

        def listener(params: Dict[str, Any]) -> None:
            if future.done():
                return
            try:
                matched = predicate is None or predicate(params)
            except Exception as e:
                future.set_exception(e)
                return
            if matched:
                future.set_result(params)

        self.on(event_name, listener)
        self._event_waiters.add(future)
        try:
            if timeout:
                return await asyncio.wait_for(future, timeout)
            return await future
        except asyncio.TimeoutError as e:
            raise CDPTimeoutError(
                f"No {event_name} event within {timeout}s",
                timeout=timeout,
                method=event_name,
            ) from e
        finally:
            self._event_waiters.discard(future)
            self.off(event_name, listener)

    def _dispatch_event(self, method: str, params: Dict[str, Any]) -> None:
        listeners: List[EventListener] = list(self._listeners.get(method, ()))
        if self.debug:
            logger.debug(
                f"CDP event: {method}",
                extra={"method": method, "listeners": len(listeners)},
            )
        for listener in listeners:
            try:
                outcome = listener(params)
            except Exception:
                logger.exception(f"Listener for {method} raised")
                continue
            if inspect.isawaitable(outcome):
                task = asyncio.ensure_future(outcome)
                self._listener_tasks.add(task)
                task.add_done_callback(self._listener_task_done)

    def _listener_task_done(self, task: asyncio.Task) -> None:
        self._listener_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Async event listener failed", exc_info=task.exception())

    # =========================================================================
    # Read loop
    # =========================================================================

    def _handle_message(self, raw: Any) -> None:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Dropping malformed CDP frame", extra={"frame": str(raw)[:200]})
            return
        if not isinstance(data, dict):
            logger.warning("Dropping non-object CDP frame", extra={"frame": str(raw)[:200]})
            return

        msg_id = data.get("id")
        method = data.get("method")
        if msg_id is not None:
            if not isinstance(msg_id, int) or isinstance(msg_id, bool):
                logger.warning("Dropping CDP frame with invalid id", extra={"frame": str(raw)[:200]})
                return
            self._handle_response(data)
        elif method is not None:
            if not isinstance(method, str):
                logger.warning("Dropping CDP frame with invalid method", extra={"frame": str(raw)[:200]})
                return
            params = data.get("params")
            self._dispatch_event(method, params if isinstance(params, dict) else {})

    def _handle_response(self, data: Dict[str, Any]) -> None:
        msg_id = data["id"]
        call = self._pending.pop(msg_id, None)
        if call is None:
            logger.debug(
                "Discarding response for unknown or settled call",
                extra={"message_id": msg_id},
            )
            return

        if "error" in data:
            error_data = data["error"]
            if not isinstance(error_data, dict):
                error_data = {"message": str(error_data)}
            error_message = error_data.get("message", "Unknown CDP error")
            logger.warning(
                f"CDP protocol error: {error_message}",
                extra={
                    "error_code": error_data.get("code"),
                    "message_id": msg_id,
                    "method": call.method,
                },
            )
            call.reject(CDPProtocolError(
                error_message,
                code=error_data.get("code"),
                cdp_error=error_data,
                session_id=call.session_id,
                method=call.method,
            ))
        else:
            call.resolve(data.get("result", {}))

    async def _read_loop(self) -> None:
        reason = "Control channel closed"
        try:
            while True:
                raw = await self._channel.recv()
                self._handle_message(raw)
        except websockets.exceptions.ConnectionClosed as e:
            if not self._close_requested:
                logger.warning(f"WebSocket connection closed by remote: {e}")
                reason = "Control channel closed by remote"
        except Exception as e:
            logger.error(f"Error in read loop: {e}", exc_info=True)
            reason = f"Control channel failed: {e}"
            try:
                await self._channel.close()
            except Exception as close_error:
                logger.debug(f"Error closing WebSocket: {close_error}")
        finally:
            self._closed = True
            self._fail_pending(reason)

    def _fail_pending(self, reason: str) -> None:
        calls = list(self._pending.values())
        self._pending.clear()
        failed = 0
        for call in calls:
            if call.reject(CDPChannelClosedError(
                reason,
                session_id=call.session_id,
                method=call.method,
                message_id=call.message_id,
            )):
                failed += 1
        for future in list(self._event_waiters):
            if not future.done():
                future.set_exception(CDPChannelClosedError(reason))
        if failed:
            logger.warning(f"{reason}; failed {failed} pending call(s)")

    async def close(self) -> None:
        """
        Close the channel. Every outstanding call fails with
        CDPChannelClosedError. Safe to call more than once.
        """
        if self._close_requested:
            return
        self._close_requested = True
        self._closed = True
        self._fail_pending("Control channel closed by client")

        try:
            await self._channel.close()
        except Exception as e:
            logger.debug(f"Error closing WebSocket: {e}")

        reader = self._reader
        if reader is not None and not reader.done():
            reader.cancel()
        if reader is not None:
            await asyncio.gather(reader, return_exceptions=True)
        logger.info("Control channel closed")


__all__ = ["Transport", "PendingCall", "EventListener"]
