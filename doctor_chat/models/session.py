from typing import List, Optional

from pydantic import BaseModel, Field

from doctor_chat.models.message import Location, Message


class SessionSnapshot(BaseModel):
    """Everything the presentation layer needs to render the chat."""
    messages: List[Message]
    busy: bool
    turn_count: int
    max_turns: int
    limit_reached: bool
    location: Optional[Location] = None
    draft_text: str = ""
    staged_images: List[str] = Field(default_factory=list)


class SubmitRequest(BaseModel):
    text: str = ""
    # Data-URIs encoded on the client. When omitted the staged uploads are sent.
    images: Optional[List[str]] = None


class DraftRequest(BaseModel):
    text: str = ""
