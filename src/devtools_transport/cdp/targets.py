"""
CDP Target Registry - Tracks targets and attached sessions from push events.
"""
import logging
from typing import Any, Dict, List, Optional

from devtools_transport.cdp.transport import Transport
from devtools_transport.core.models import SessionInfo, SessionStatus, TargetInfo

logger = logging.getLogger("devtools_transport")


class TargetRegistry:
    """
    Keeps target and session records current while bound to a transport.

    The registry only reacts to ``Target.*`` events; it never issues
    commands. Call ``bind`` after connecting and ``unbind`` before the
    transport is discarded.
    """

    def __init__(self):
        self.targets: Dict[str, TargetInfo] = {}
        self.sessions: Dict[str, SessionInfo] = {}
        self._transport: Optional[Transport] = None
        self._handlers = {
            "Target.targetCreated": self._on_target_created,
            "Target.targetInfoChanged": self._on_target_info_changed,
            "Target.targetDestroyed": self._on_target_destroyed,
            "Target.attachedToTarget": self._on_attached,
            "Target.detachedFromTarget": self._on_detached,
        }

    def bind(self, transport: Transport) -> None:
        if self._transport is transport:
            return
        self.unbind()
        for event_name, handler in self._handlers.items():
            transport.on(event_name, handler)
        self._transport = transport

    def unbind(self) -> None:
        if self._transport is None:
            return
        for event_name, handler in self._handlers.items():
            self._transport.off(event_name, handler)
        self._transport = None

    # =========================================================================
    # Records
    # =========================================================================

    def add_target(self, info: TargetInfo) -> TargetInfo:
        existing = self.targets.get(info.target_id)
        if existing and existing.session_id and not info.session_id:
            info.session_id = existing.session_id
        self.targets[info.target_id] = info
        return info

    def add_session(self, session_id: str, target_id: str) -> SessionInfo:
        session = SessionInfo(session_id=session_id, target_id=target_id)
        self.sessions[session_id] = session
        target = self.targets.get(target_id)
        if target:
            target.session_id = session_id
            target.attached = True
        return session

    def get_target(self, target_id: str) -> Optional[TargetInfo]:
        return self.targets.get(target_id)

    def get_session(self, session_id: str) -> Optional[SessionInfo]:
        return self.sessions.get(session_id)

    def pages(self) -> List[TargetInfo]:
        """All known targets of type ``page``."""
        return [t for t in self.targets.values() if t.type == "page"]

    def remove_session(self, session_id: str) -> None:
        session = self.sessions.pop(session_id, None)
        if session is None:
            return
        target = self.targets.get(session.target_id)
        if target and target.session_id == session_id:
            target.session_id = None
            target.attached = False
        logger.debug(f"Removed session {session_id}")

    def remove_target(self, target_id: str) -> None:
        target = self.targets.pop(target_id, None)
        if target is None:
            return
        for session_id in [sid for sid, s in self.sessions.items() if s.target_id == target_id]:
            del self.sessions[session_id]
        logger.debug(f"Removed target {target_id}")

    # =========================================================================
    # Event handlers
    # =========================================================================

    def _on_target_created(self, params: Dict[str, Any]) -> None:
        info = params.get("targetInfo")
        if info and info.get("targetId"):
            self.add_target(TargetInfo.from_cdp(info))

    def _on_target_info_changed(self, params: Dict[str, Any]) -> None:
        info = params.get("targetInfo")
        if not info or not info.get("targetId"):
            return
        target = self.targets.get(info["targetId"])
        if target is None:
            self.add_target(TargetInfo.from_cdp(info))
            return
        target.url = info.get("url", target.url)
        target.title = info.get("title", target.title)

    def _on_target_destroyed(self, params: Dict[str, Any]) -> None:
        target_id = params.get("targetId")
        if target_id:
            self.remove_target(target_id)

    def _on_attached(self, params: Dict[str, Any]) -> None:
        session_id = params.get("sessionId")
        info = params.get("targetInfo") or {}
        target_id = info.get("targetId")
        if not session_id or not target_id:
            return
        if target_id not in self.targets:
            self.add_target(TargetInfo.from_cdp(info))
        self.add_session(session_id, target_id)

    def _on_detached(self, params: Dict[str, Any]) -> None:
        session_id = params.get("sessionId")
        if not session_id:
            return
        session = self.sessions.get(session_id)
        if session:
            session.status = SessionStatus.DETACHED
        logger.info("Target detached from session", extra={"session_id": session_id})
        self.remove_session(session_id)
