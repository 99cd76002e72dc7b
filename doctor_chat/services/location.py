# location.py
#
# One-shot location capture for a new session. There is no timeout and no
# retry: if the locator fails the session simply has no location.

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from doctor_chat.models.message import Location
from doctor_chat.services.session_store import SessionStore
from doctor_chat.utils.logger import logger

Locator = Callable[[], Awaitable[Optional[Location]]]


def static_locator(cfg: Optional[Dict[str, Any]]) -> Optional[Locator]:
    """Locator that answers with fixed coordinates from config/config.yaml, if any are configured."""
    if not cfg:
        return None
    location = Location(latitude=cfg["latitude"], longitude=cfg["longitude"])

    async def locate() -> Location:
        return location

    return locate


async def capture_location(store: SessionStore, locate: Locator) -> Optional[Location]:
    try:
        location = await locate()
    except Exception as e:
        logger.info(f"Location access denied or error: {e}")
        return None

    if location is None:
        logger.info("Location unavailable for this session")
        return None
    store.set_location(location)
    return location


def schedule_location_capture(store: SessionStore, locate: Locator) -> asyncio.Task:
    """Fire and forget; the task publishes into the store when (and if) it succeeds."""
    return asyncio.create_task(capture_location(store, locate))
