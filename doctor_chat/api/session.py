import asyncio
from typing import List, Optional, Set

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, UploadFile
from fastapi.responses import StreamingResponse

from doctor_chat.models.message import Location
from doctor_chat.models.session import DraftRequest, SessionSnapshot, SubmitRequest
from doctor_chat.services.gemini_service import GeminiDoctorClient, GeminiSettings
from doctor_chat.services.image_staging import stage_uploads
from doctor_chat.services.location import Locator, schedule_location_capture
from doctor_chat.services.orchestrator import ModelClient, SessionOrchestrator
from doctor_chat.services.session_store import SessionStore
from doctor_chat.utils.logger import logger

router = APIRouter(prefix="/session")

# --- Process-wide session state (one conversation per process) ---
model_client: ModelClient = GeminiDoctorClient()
session_locator: Optional[Locator] = None
current_session: Optional[SessionStore] = None
_background_tasks: Set[asyncio.Task] = set()


def configure(settings: GeminiSettings, locator: Optional[Locator] = None):
    """Called once by main.py with the values from config/config.yaml."""
    global model_client, session_locator
    model_client = GeminiDoctorClient(settings)
    session_locator = locator
    logger.info(f"Session router configured: model={settings.model} locator={'yes' if locator else 'no'}")


def open_session() -> SessionStore:
    store = SessionStore()
    if session_locator is not None:
        task = schedule_location_capture(store, session_locator)
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)
    logger.info("🩺 New consultation session opened")
    return store


async def get_session() -> SessionStore:
    """FastAPI dependency: the current session, opened on first use."""
    global current_session
    if current_session is None:
        current_session = open_session()
    return current_session


def get_model_client() -> ModelClient:
    return model_client


# --- SSE Event Generator ---
async def snapshot_events(store: SessionStore):
    """Yields the full session snapshot once on connect and again after every change."""
    queue: asyncio.Queue = asyncio.Queue()
    unsubscribe = store.subscribe(lambda event, _store: queue.put_nowait(event))
    try:
        yield f"event: snapshot\ndata: {store.snapshot().model_dump_json()}\n\n"
        while True:
            event = await queue.get()
            yield f"event: {event}\ndata: {store.snapshot().model_dump_json()}\n\n"
    except asyncio.CancelledError:
        logger.info("SSE - Client disconnected from session stream.")
        raise
    finally:
        unsubscribe()


# --- API Endpoints ---
@router.get("", response_model=SessionSnapshot)
async def read_session(store: SessionStore = Depends(get_session)):
    return store.snapshot()


@router.get("/stream")
async def stream_session(store: SessionStore = Depends(get_session)):
    """ Endpoint for Server-Sent Events (SSE). Reconnect after a reset. """
    logger.info("SSE connection opened for session stream")
    return StreamingResponse(snapshot_events(store), media_type="text/event-stream")


@router.post("/messages")
async def submit_message(
    request: SubmitRequest,
    background_tasks: BackgroundTasks,
    store: SessionStore = Depends(get_session),
    client: ModelClient = Depends(get_model_client),
):
    """
    Sends one message. The user message is appended before this returns; the
    model reply is appended by a background task and announced on the stream.
    Rejected submissions (empty, busy, turn limit reached) change nothing.
    """
    images = request.images if request.images is not None else list(store.staged_images)
    logger.info(f"📡 Message received: {len(request.text)} chars, {len(images)} image(s)")

    orchestrator = SessionOrchestrator(store, client)
    pending, rejection = orchestrator.begin(request.text, images)
    if pending is None:
        return {"status": "ignored", "outcome": rejection.value}

    background_tasks.add_task(orchestrator.complete, pending)
    return {"status": "accepted", "message_id": pending.message.id}


@router.put("/draft")
async def update_draft(request: DraftRequest, store: SessionStore = Depends(get_session)):
    store.set_draft_text(request.text)
    return {"draft_text": store.draft_text}


@router.post("/images")
async def upload_images(
    files: List[UploadFile] = File(...),
    store: SessionStore = Depends(get_session),
):
    staged = await stage_uploads(store, files)
    return {"staged": staged, "staged_images": len(store.staged_images)}


@router.delete("/images/{index}")
async def remove_image(index: int, store: SessionStore = Depends(get_session)):
    try:
        store.remove_staged_image(index)
    except IndexError:
        raise HTTPException(status_code=404, detail=f"No staged image at position {index}")
    return {"staged_images": len(store.staged_images)}


@router.put("/location")
async def report_location(location: Location, store: SessionStore = Depends(get_session)):
    """ Location reported by the client. Only the first report of a session is kept. """
    if not store.set_location(location):
        raise HTTPException(status_code=409, detail="Location already set for this session")
    return {"location": location}


@router.post("/reset", response_model=SessionSnapshot)
async def reset_session():
    """ Discards the conversation and starts over from the greeting. """
    global current_session
    current_session = open_session()
    return current_session.snapshot()
