import uuid
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    USER = "user"
    MODEL = "model"


class GroundingReference(BaseModel):
    """A map reference returned alongside a model answer (e.g. a nearby clinic)."""
    model_config = ConfigDict(frozen=True)

    title: str  # Display label, falls back to "Google Maps"
    uri: str  # Google Maps link


class Location(BaseModel):
    """Coordinates captured once per session to ground clinic searches."""
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


def new_message_id() -> str:
    return uuid.uuid4().hex


class Message(BaseModel):
    """One entry of the session log. Entries are never edited after they are appended."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_message_id)
    role: Role
    text: str = ""
    images: Tuple[str, ...] = Field(default=(), max_length=2)  # data-URIs, in attach order
    grounding: Optional[List[GroundingReference]] = None  # map references, already filtered
    is_pending: bool = False
