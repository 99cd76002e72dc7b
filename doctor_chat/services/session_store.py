# session_store.py
#
# In-memory state of the one conversation this process serves. All changes go
# through the methods below; each one notifies subscribers so the client can
# re-render. Nothing is persisted: a reset starts over from the greeting.

from typing import Callable, List, Optional, Tuple

from doctor_chat.models.message import Location, Message, Role
from doctor_chat.models.session import SessionSnapshot
from doctor_chat.services.turn_limiter import MAX_TURNS, is_limit_reached, turn_count
from doctor_chat.utils.logger import logger

MAX_ATTACHED_IMAGES = 2

GREETING_TEXT = (
    "こんにちは。AI総合病院の総合診療科へようこそ。\n"
    "本日はどのような症状でお悩みですか？\n"
    "体調や気になること、何でもお話しください。\n\n"
    "※画像も2枚まで拝見できます。"
)

Listener = Callable[[str, "SessionStore"], None]


def greeting_message() -> Message:
    return Message(id="welcome", role=Role.MODEL, text=GREETING_TEXT)


class SessionStore:
    """
    Session log, busy flag, location and input staging for a single chat.
    Events: "message_appended", "busy_changed", "location_set", "staging_changed".
    """

    def __init__(self, max_turns: int = MAX_TURNS):
        self.max_turns = max_turns
        self._messages: List[Message] = [greeting_message()]
        self._busy = False
        self._location: Optional[Location] = None
        self._draft_text = ""
        self._staged_images: List[str] = []
        self._listeners: List[Listener] = []

    # --- Observation ---
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener and return the function that removes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: str):
        for listener in list(self._listeners):
            try:
                listener(event, self)
            except Exception as e:
                logger.error(f"❌ Session listener failed on '{event}': {e}", exc_info=True)

    # --- Session log ---
    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    def append(self, message: Message):
        self._messages.append(message)
        logger.debug(f"Session log: appended {message.role.value} message {message.id} (length {len(self._messages)})")
        self._emit("message_appended")

    @property
    def turn_count(self) -> int:
        return turn_count(self._messages)

    @property
    def limit_reached(self) -> bool:
        return is_limit_reached(self._messages, self.max_turns)

    # --- Busy flag ---
    @property
    def busy(self) -> bool:
        return self._busy

    def set_busy(self, busy: bool):
        if self._busy == busy:
            return
        self._busy = busy
        self._emit("busy_changed")

    # --- Location ---
    @property
    def location(self) -> Optional[Location]:
        return self._location

    def set_location(self, location: Location) -> bool:
        """Record the location once. Later calls are ignored and return False."""
        if self._location is not None:
            logger.warning("⚠️ Location already captured for this session; ignoring update")
            return False
        self._location = location
        logger.info(f"📍 Location captured: lat={location.latitude:.5f} lon={location.longitude:.5f}")
        self._emit("location_set")
        return True

    # --- Input staging ---
    @property
    def draft_text(self) -> str:
        return self._draft_text

    @property
    def staged_images(self) -> Tuple[str, ...]:
        return tuple(self._staged_images)

    @property
    def remaining_image_slots(self) -> int:
        return MAX_ATTACHED_IMAGES - len(self._staged_images)

    def set_draft_text(self, text: str):
        self._draft_text = text
        self._emit("staging_changed")

    def stage_image(self, data_uri: str) -> bool:
        """Add an encoded image to the staging area. Images beyond the cap are dropped silently."""
        if self.remaining_image_slots <= 0:
            logger.debug("Staging full; dropping image")
            return False
        self._staged_images.append(data_uri)
        self._emit("staging_changed")
        return True

    def remove_staged_image(self, index: int):
        """Raises IndexError for an unknown position."""
        if not 0 <= index < len(self._staged_images):
            raise IndexError(f"No staged image at position {index}")
        del self._staged_images[index]
        self._emit("staging_changed")

    def clear_staging(self):
        self._draft_text = ""
        self._staged_images = []
        self._emit("staging_changed")

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            messages=list(self._messages),
            busy=self._busy,
            turn_count=self.turn_count,
            max_turns=self.max_turns,
            limit_reached=self.limit_reached,
            location=self._location,
            draft_text=self._draft_text,
            staged_images=list(self._staged_images),
        )
