"""
Session orchestrator.

Owns the request/response cycle of one chat turn: checks whether a message
may be sent, appends it optimistically, calls the model and appends its reply
(or a fallback). The presentation layer only ever sees the session log; no
exception from the model call gets past this module.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Sequence, Tuple

from doctor_chat.models.message import Location, Message, Role
from doctor_chat.services.gemini_service import ModelReply
from doctor_chat.services.grounding import extract_map_references
from doctor_chat.services.session_store import MAX_ATTACHED_IMAGES, SessionStore
from doctor_chat.utils.exceptions import ConfigurationError
from doctor_chat.utils.logger import logger

FALLBACK_TEXT = "申し訳ありません。通信エラーが発生しました。もう一度お試しください。"
CLARIFICATION_TEXT = "すみません、うまく聞き取れませんでした。もう一度教えていただけますか？"


class ModelClient(Protocol):
    async def chat(
        self,
        history: Sequence[Message],
        new_text: str,
        new_images: Sequence[str],
        location: Optional[Location],
    ) -> ModelReply:
        ...


class SubmitOutcome(str, Enum):
    ANSWERED = "answered"
    CLARIFIED = "clarified"  # model answered with neither text nor grounding
    FALLBACK = "fallback"
    REJECTED_EMPTY = "rejected_empty"
    REJECTED_BUSY = "rejected_busy"
    REJECTED_LIMIT = "rejected_limit"


@dataclass
class PendingTurn:
    """A user message that has been appended and is waiting for the model."""
    message: Message
    history: Tuple[Message, ...]  # log as it was before `message` was appended
    location: Optional[Location]


class SessionOrchestrator:
    def __init__(self, store: SessionStore, model_client: ModelClient):
        self.store = store
        self.model_client = model_client

    def check(self, text: str, images: Sequence[str]) -> Optional[SubmitOutcome]:
        """Return the rejection for this submission, or None if it may be sent."""
        if not (text or "").strip() and not images:
            return SubmitOutcome.REJECTED_EMPTY
        if self.store.busy:
            return SubmitOutcome.REJECTED_BUSY
        if self.store.limit_reached:
            return SubmitOutcome.REJECTED_LIMIT
        return None

    def begin(self, text: str, images: Sequence[str] = ()) -> Tuple[Optional[PendingTurn], Optional[SubmitOutcome]]:
        """
        Synchronous half of a submission: precondition checks, optimistic append,
        staging clear and busy flag. Returns (pending, None) when accepted and
        (None, rejection) otherwise. Rejections leave the store untouched.
        """
        images = list(images or [])[:MAX_ATTACHED_IMAGES]
        rejection = self.check(text, images)
        if rejection is not None:
            logger.debug(f"Submission ignored: {rejection.value}")
            return None, rejection

        history = self.store.messages
        message = Message(role=Role.USER, text=text or "", images=tuple(images))
        self.store.append(message)
        self.store.clear_staging()
        self.store.set_busy(True)
        logger.info(f"📡 Turn {self.store.turn_count}/{self.store.max_turns} sent ({len(images)} image(s))")
        return PendingTurn(message=message, history=history, location=self.store.location), None

    async def complete(self, pending: PendingTurn) -> SubmitOutcome:
        """Asynchronous half: call the model and append its reply or the fallback message."""
        try:
            reply = await self.model_client.chat(
                pending.history,
                pending.message.text,
                pending.message.images,
                pending.location,
            )
            return self._append_reply(reply)
        except ConfigurationError as e:
            logger.critical(f"❌ Configuration error, model call not attempted: {e.to_dict()}")
            return self._append_fallback()
        except Exception as e:
            logger.error(f"❌ Model call failed for message {pending.message.id}: {e}", exc_info=True)
            return self._append_fallback()
        finally:
            self.store.set_busy(False)

    async def submit(self, text: str, images: Sequence[str] = ()) -> SubmitOutcome:
        pending, rejection = self.begin(text, images)
        if pending is None:
            return rejection
        return await self.complete(pending)

    def _append_reply(self, reply: ModelReply) -> SubmitOutcome:
        if not reply.text and not reply.grounding_metadata:
            logger.warning("⚠️ Model returned neither text nor grounding; asking the user to rephrase")
            self.store.append(Message(role=Role.MODEL, text=CLARIFICATION_TEXT))
            return SubmitOutcome.CLARIFIED

        references = extract_map_references(reply.grounding_metadata)
        self.store.append(Message(role=Role.MODEL, text=reply.text, grounding=references or None))
        logger.info(f"✅ Reply appended with {len(references)} map reference(s)")
        return SubmitOutcome.ANSWERED

    def _append_fallback(self) -> SubmitOutcome:
        self.store.append(Message(role=Role.MODEL, text=FALLBACK_TEXT))
        return SubmitOutcome.FALLBACK
