"""
Session Handler - translates connection events into registry calls and relays.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import ValidationError

from room_manager import CapacityResult, PasscodeSpaceExhausted, Room, RoomRegistry, mask_passcode
from room_models import JoinRoomPayload, JoinSuccess, NewMessage, RoomCreated, SendMessagePayload
from security import (
    is_valid_passcode,
    is_valid_room_key,
    log_security_event,
    sanitize_display_name,
    sanitize_message,
)
from transport import ConnectionHub

logger = logging.getLogger(__name__)

# Outbound event names
ROOM_CREATED = "roomCreated"
JOIN_SUCCESS = "joinSuccess"
SYSTEM_MESSAGE = "systemMessage"
NEW_MESSAGE = "newMessage"
SHOW_TYPING = "showTyping"
HIDE_TYPING = "hideTyping"

MSG_INVALID_PASSCODE = "Invalid or expired passcode."
MSG_ROOM_FULL = "Room is full."
MSG_ROOM_EXPIRED = "⚠️ Room expired."
MSG_CREATE_FAILED = "Could not create a room. Please try again."


class SessionState(enum.Enum):
    UNJOINED = "unjoined"
    JOINED = "joined"
    LEFT = "left"
    DISCONNECTED = "disconnected"


@dataclass
class Session:
    """Per-connection state. Lives as long as the connection."""
    connection_id: str
    room_key: Optional[str] = None
    display_name: Optional[str] = None
    state: SessionState = SessionState.UNJOINED

    @property
    def is_joined(self) -> bool:
        return self.state is SessionState.JOINED and self.room_key is not None


class SessionHandler:
    """
    Per-connection state machine: unjoined -> joined -> (left | disconnected).

    Sessions in `left` or `disconnected` ignore every further event.
    Room expiry is the one way back from joined to unjoined.
    """

    def __init__(self, registry: RoomRegistry, hub: ConnectionHub):
        self.registry = registry
        self.hub = hub
        self.sessions: Dict[str, Session] = {}
        self._handlers = {
            "createRoom": self.on_create_room,
            "joinRoom": self.on_join_room,
            "sendMessage": self.on_send_message,
            "typing": self.on_typing,
            "stopTyping": self.on_stop_typing,
            "quitRoom": self.on_quit_room,
        }

    def open_session(self, connection_id: str) -> Session:
        session = Session(connection_id=connection_id)
        self.sessions[connection_id] = session
        return session

    async def dispatch(self, session: Session, event: str, data: Any = None):
        """Route one inbound event. Unknown events and bad payloads are dropped."""
        handler = self._handlers.get(event)
        if handler is None:
            logger.warning(f"Unknown event '{event}' from {session.connection_id}")
            return
        try:
            await handler(session, data)
        except ValidationError as e:
            logger.warning(f"Invalid '{event}' payload from {session.connection_id}: {e.error_count()} error(s)")

    async def on_create_room(self, session: Session, data: Any = None):
        if session.state is not SessionState.UNJOINED:
            logger.debug(f"createRoom ignored for {session.connection_id} in state {session.state.value}")
            return

        try:
            room = self.registry.create_room()
        except PasscodeSpaceExhausted as e:
            logger.error(f"Room creation failed for {session.connection_id}: {e}")
            await self.hub.emit_to_connection(session.connection_id, SYSTEM_MESSAGE, MSG_CREATE_FAILED)
            return

        self.hub.join(session.connection_id, room.room_key)
        session.room_key = room.room_key
        session.state = SessionState.JOINED

        created = RoomCreated(passcode=room.passcode, room_key=room.room_key, expire_at=room.expire_at_ms)
        await self.hub.emit_to_connection(session.connection_id, ROOM_CREATED, created.model_dump(by_alias=True))

    async def on_join_room(self, session: Session, data: Any = None):
        payload = JoinRoomPayload.model_validate(data or {})

        if session.state not in (SessionState.UNJOINED, SessionState.JOINED):
            return

        room = self._resolve(payload)
        if session.state is SessionState.JOINED and (room is None or room.room_key != session.room_key):
            logger.debug(f"joinRoom ignored for {session.connection_id}: already in another room")
            return

        if room is None:
            self._log_failed_join(session, payload)
            await self.hub.emit_to_connection(session.connection_id, SYSTEM_MESSAGE, MSG_INVALID_PASSCODE)
            return

        if self.registry.capacity_check(room.room_key, session.connection_id) is CapacityResult.FULL:
            logger.info(f"Join rejected, room full: passcode={mask_passcode(room.passcode)}")
            await self.hub.emit_to_connection(session.connection_id, SYSTEM_MESSAGE, MSG_ROOM_FULL)
            return

        self.hub.join(session.connection_id, room.room_key)
        session.room_key = room.room_key
        session.display_name = sanitize_display_name(payload.name)
        session.state = SessionState.JOINED

        # Reverse lookup lets a reconnecting creator recover its passcode
        passcode = self.registry.lookup_by_room_key(room.room_key).passcode
        success = JoinSuccess(room_key=room.room_key, passcode=passcode, expire_at=room.expire_at_ms)
        await self.hub.emit_to_connection(session.connection_id, JOIN_SUCCESS, success.model_dump(by_alias=True))
        await self.hub.emit_to_room(
            room.room_key, SYSTEM_MESSAGE, f"{session.display_name} joined.", exclude=session.connection_id
        )
        logger.info(f"{session.connection_id} joined room passcode={mask_passcode(passcode)}")

    def _resolve(self, payload: JoinRoomPayload) -> Optional[Room]:
        if payload.passcode:
            return self.registry.lookup_by_passcode(payload.passcode)
        if payload.room_key:
            return self.registry.lookup_by_room_key(payload.room_key)
        return None

    @staticmethod
    def _log_failed_join(session: Session, payload: JoinRoomPayload):
        if payload.passcode:
            # Well-formed misses are what guessing looks like
            event = "unknown_passcode" if is_valid_passcode(payload.passcode) else "malformed_passcode"
            detail = mask_passcode(payload.passcode.strip())
        elif payload.room_key:
            event = "unknown_room_key" if is_valid_room_key(payload.room_key) else "malformed_room_key"
            detail = payload.room_key[:4] + "***"
        else:
            event, detail = "missing_room_identifier", None
        log_security_event(event, {"connection": session.connection_id, "identifier": detail})

    async def on_send_message(self, session: Session, data: Any = None):
        if not session.is_joined:
            return
        payload = SendMessagePayload.model_validate(data or {})
        message = sanitize_message(payload.message)
        if not message:
            return
        relay = NewMessage(message=message, sender=session.display_name or "Anonymous")
        await self.hub.emit_to_room(
            session.room_key, NEW_MESSAGE, relay.model_dump(by_alias=True), exclude=session.connection_id
        )

    async def on_typing(self, session: Session, data: Any = None):
        if session.is_joined:
            await self.hub.emit_to_room(session.room_key, SHOW_TYPING, exclude=session.connection_id)

    async def on_stop_typing(self, session: Session, data: Any = None):
        if session.is_joined:
            await self.hub.emit_to_room(session.room_key, HIDE_TYPING, exclude=session.connection_id)

    async def on_quit_room(self, session: Session, data: Any = None):
        if not session.is_joined:
            return
        room_key = session.room_key
        await self.hub.emit_to_room(
            room_key, SYSTEM_MESSAGE, f"{session.display_name or 'User'} left.", exclude=session.connection_id
        )
        self.hub.leave(session.connection_id, room_key)
        session.room_key = None
        session.state = SessionState.LEFT
        logger.info(f"{session.connection_id} quit its room")

    async def on_disconnect(self, session: Session):
        """Transport-driven. The hub drops the connection from its groups separately."""
        self.sessions.pop(session.connection_id, None)
        if session.is_joined:
            await self.hub.emit_to_room(
                session.room_key,
                SYSTEM_MESSAGE,
                f"{session.display_name or 'User'} disconnected.",
                exclude=session.connection_id,
            )
        session.state = SessionState.DISCONNECTED

    async def expire_room(self, room: Room):
        """
        Registry expiry callback: notify members, then detach all of them.

        Members go back to unjoined, so the same connection may create
        or join another room.
        """
        await self.hub.emit_to_room(room.room_key, SYSTEM_MESSAGE, MSG_ROOM_EXPIRED)
        for connection_id in self.hub.leave_room(room.room_key):
            session = self.sessions.get(connection_id)
            if session is not None and session.room_key == room.room_key:
                session.room_key = None
                session.display_name = None
                session.state = SessionState.UNJOINED
