"""
Context window builder.

Turns the session log plus the message being sent into the ordered list of
content blocks the model receives. Only the most recent messages are sent,
and only the last two of those may carry their images again: older pictures
are assumed to have been looked at already, so the text alone keeps the
context. Images attached to the new message are always sent.
"""
import base64
import binascii
import re
from typing import List, Optional, Sequence

from doctor_chat.models.content import ContentBlock, InlineImage, TextPart
from doctor_chat.models.message import Message, Role
from doctor_chat.utils.logger import logger

MAX_HISTORY_MESSAGES = 10  # roughly five exchanges
IMAGE_WINDOW = 2
DEFAULT_IMAGE_MIME = "image/jpeg"

DATA_URI_PATTERN = re.compile(r"^data:(?P<meta>[^,]*),(?P<data>.+)$", re.DOTALL)
IMAGE_MIME_PATTERN = re.compile(r"^(image/[\w.+-]+)")


def recent_window(history: Sequence[Message], size: int = MAX_HISTORY_MESSAGES) -> List[Message]:
    """Last `size` messages in conversational order. Older ones stay in the log but are not sent."""
    if size <= 0:
        return []
    return list(history[-size:])


def to_inline_image(data_uri: str) -> Optional[InlineImage]:
    """
    Split a data-URI into MIME type and base64 payload.
    Returns None for anything that is not a base64 data-URI with a decodable
    payload; the MIME type defaults to image/jpeg when the prefix does not
    name an image type.
    """
    if not isinstance(data_uri, str):
        return None
    match = DATA_URI_PATTERN.match(data_uri)
    if not match:
        return None

    meta = match.group("meta")
    if "base64" not in [param.strip().lower() for param in meta.split(";")[1:]]:
        return None
    try:
        base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError):
        return None

    mime_match = IMAGE_MIME_PATTERN.match(meta)
    mime_type = mime_match.group(1) if mime_match else DEFAULT_IMAGE_MIME
    return InlineImage(mime_type=mime_type, data=match.group("data"))


def _image_parts(images: Sequence[str]) -> List[InlineImage]:
    parts = []
    for image in images:
        inline = to_inline_image(image)
        if inline is None:
            logger.debug("Skipping image that is not a data-URI")
            continue
        parts.append(inline)
    return parts


def build_contents(
    history: Sequence[Message],
    new_text: str,
    new_images: Sequence[str] = (),
    window_size: int = MAX_HISTORY_MESSAGES,
) -> List[ContentBlock]:
    """
    Build the request payload for one turn.

    :param history: Session log as it was before the new message was appended.
    :param new_text: Text of the message being sent.
    :param new_images: Data-URIs attached to the message being sent.
    :return: One block per windowed history message, then one user block for the new turn.
    """
    window = recent_window(history, window_size)
    first_image_position = len(window) - IMAGE_WINDOW

    contents: List[ContentBlock] = []
    for position, message in enumerate(window):
        parts = [TextPart(text=message.text)]
        if position >= first_image_position and message.images:
            parts.extend(_image_parts(message.images))
        contents.append(ContentBlock(role=message.role, parts=parts))

    contents.append(
        ContentBlock(role=Role.USER, parts=[TextPart(text=new_text), *_image_parts(new_images)])
    )
    return contents
