# image_staging.py
#
# Encodes uploaded files into data-URIs and stages them for the next message.
# Each file is read in its own task and appended when it finishes, so with
# several files the staged order follows completion, not selection.

import asyncio
import base64
from typing import List, Optional, Protocol, Sequence

from doctor_chat.services.session_store import SessionStore
from doctor_chat.utils.logger import logger

DEFAULT_CONTENT_TYPE = "image/jpeg"


class ReadableFile(Protocol):
    content_type: Optional[str]

    async def read(self) -> bytes:
        ...


def to_data_uri(payload: bytes, content_type: Optional[str]) -> str:
    encoded = base64.b64encode(payload).decode("ascii")
    return f"data:{content_type or DEFAULT_CONTENT_TYPE};base64,{encoded}"


async def _encode_and_stage(store: SessionStore, upload: ReadableFile) -> bool:
    payload = await upload.read()
    return store.stage_image(to_data_uri(payload, upload.content_type))


async def stage_uploads(store: SessionStore, uploads: Sequence[ReadableFile]) -> int:
    """
    Stage as many uploads as there are free slots; the rest are ignored without notice.
    Returns the number of images staged.
    """
    accepted = list(uploads)[:max(store.remaining_image_slots, 0)]
    if len(accepted) < len(uploads):
        logger.info(f"🖼️ {len(uploads) - len(accepted)} file(s) ignored: only 2 images per message")

    results: List[bool] = await asyncio.gather(
        *(_encode_and_stage(store, upload) for upload in accepted)
    )
    staged = sum(1 for ok in results if ok)
    logger.info(f"🖼️ Staged {staged} image(s)")
    return staged
