from typing import List, Union

from pydantic import BaseModel

from doctor_chat.models.message import Role


class TextPart(BaseModel):
    text: str


class InlineImage(BaseModel):
    """An image ready for the model: MIME type plus the base64 payload without its data-URI prefix."""
    mime_type: str
    data: str


class ContentBlock(BaseModel):
    """Role-tagged content block, the unit the model receives per conversation turn."""
    role: Role
    parts: List[Union[TextPart, InlineImage]]

    @property
    def images(self) -> List[InlineImage]:
        return [part for part in self.parts if isinstance(part, InlineImage)]

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))
