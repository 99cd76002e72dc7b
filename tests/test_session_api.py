import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from doctor_chat.api import session as session_api
from doctor_chat.main import app
from doctor_chat.models.message import Message, Role
from doctor_chat.services.gemini_service import ModelReply
from doctor_chat.services.orchestrator import CLARIFICATION_TEXT, FALLBACK_TEXT
from doctor_chat.services.session_store import GREETING_TEXT, SessionStore
from doctor_chat.utils.exceptions import ModelCallError
from helpers import FakeModelClient, PNG_URI


@pytest.fixture
def fake_model():
    fake = FakeModelClient()
    app.dependency_overrides[session_api.get_model_client] = lambda: fake
    session_api.current_session = SessionStore()
    yield fake
    app.dependency_overrides.clear()
    session_api.current_session = None


@pytest_asyncio.fixture
async def client(fake_model):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as client:
        yield client


@pytest.mark.asyncio
async def test_root(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert "Welcome" in response.json()["message"]


@pytest.mark.asyncio
async def test_new_session_has_only_the_greeting(client):
    response = await client.get("/session")
    assert response.status_code == 200
    body = response.json()
    assert len(body["messages"]) == 1
    assert body["messages"][0]["role"] == "model"
    assert body["messages"][0]["text"] == GREETING_TEXT
    assert body["turn_count"] == 0
    assert body["max_turns"] == 10
    assert body["limit_reached"] is False
    assert body["busy"] is False
    assert body["location"] is None


@pytest.mark.asyncio
async def test_submit_appends_user_message_and_reply(client, fake_model):
    response = await client.post("/session/messages", json={"text": "頭痛がします"})
    assert response.status_code == 200
    assert response.json()["status"] == "accepted"

    body = (await client.get("/session")).json()
    assert [m["role"] for m in body["messages"]] == ["model", "user", "model"]
    assert body["messages"][1]["text"] == "頭痛がします"
    assert body["messages"][2]["text"] == "お大事にしてください。"
    assert body["turn_count"] == 1
    assert body["busy"] is False
    assert fake_model.calls[0]["location"] is None


@pytest.mark.asyncio
async def test_empty_submission_is_ignored(client, fake_model):
    response = await client.post("/session/messages", json={"text": "  "})
    assert response.json() == {"status": "ignored", "outcome": "rejected_empty"}
    assert len((await client.get("/session")).json()["messages"]) == 1
    assert fake_model.calls == []


@pytest.mark.asyncio
async def test_empty_reply_becomes_clarification(client, fake_model):
    fake_model.reply = ModelReply(text="", grounding_metadata=None)
    await client.post("/session/messages", json={"text": "頭痛がします"})
    messages = (await client.get("/session")).json()["messages"]
    assert messages[-1]["text"] == CLARIFICATION_TEXT


@pytest.mark.asyncio
async def test_transport_error_becomes_fallback_message(client, fake_model):
    fake_model.error = ModelCallError("timeout")
    response = await client.post("/session/messages", json={"text": "頭痛がします"})
    assert response.status_code == 200

    body = (await client.get("/session")).json()
    assert len(body["messages"]) == 3
    assert body["messages"][-1]["role"] == "model"
    assert body["messages"][-1]["text"] == FALLBACK_TEXT
    assert body["busy"] is False
    assert body["turn_count"] == 1


@pytest.mark.asyncio
async def test_limit_reached_blocks_further_messages(client, fake_model):
    for i in range(10):
        response = await client.post("/session/messages", json={"text": f"質問{i}"})
        assert response.json()["status"] == "accepted"

    body = (await client.get("/session")).json()
    assert body["limit_reached"] is True
    length = len(body["messages"])

    response = await client.post("/session/messages", json={"text": "もう一つ"})
    assert response.json() == {"status": "ignored", "outcome": "rejected_limit"}
    body = (await client.get("/session")).json()
    assert len(body["messages"]) == length
    assert body["busy"] is False


@pytest.mark.asyncio
async def test_busy_session_ignores_submission(client, fake_model):
    session_api.current_session.set_busy(True)
    response = await client.post("/session/messages", json={"text": "頭痛"})
    assert response.json()["outcome"] == "rejected_busy"
    assert fake_model.calls == []


@pytest.mark.asyncio
async def test_uploaded_images_are_staged_and_sent(client, fake_model):
    files = [
        ("files", ("a.png", b"\x89PNG-a", "image/png")),
        ("files", ("b.png", b"\x89PNG-b", "image/png")),
        ("files", ("c.png", b"\x89PNG-c", "image/png")),
    ]
    response = await client.post("/session/images", files=files)
    assert response.status_code == 200
    assert response.json() == {"staged": 2, "staged_images": 2}

    staged = (await client.get("/session")).json()["staged_images"]
    assert all(uri.startswith("data:image/png;base64,") for uri in staged)

    response = await client.post("/session/messages", json={"text": ""})
    assert response.json()["status"] == "accepted"
    assert sorted(fake_model.calls[0]["new_images"]) == sorted(staged)

    body = (await client.get("/session")).json()
    assert body["staged_images"] == []
    assert body["draft_text"] == ""


@pytest.mark.asyncio
async def test_inline_images_take_precedence_over_staging(client, fake_model):
    response = await client.post("/session/messages", json={"text": "", "images": [PNG_URI, "https://example.com/x.png"]})
    assert response.json()["status"] == "accepted"
    assert fake_model.calls[0]["new_images"] == [PNG_URI, "https://example.com/x.png"]


@pytest.mark.asyncio
async def test_remove_staged_image(client):
    session_api.current_session.stage_image(PNG_URI)
    assert (await client.delete("/session/images/3")).status_code == 404
    response = await client.delete("/session/images/0")
    assert response.status_code == 200
    assert response.json() == {"staged_images": 0}


@pytest.mark.asyncio
async def test_draft_text(client):
    response = await client.put("/session/draft", json={"text": "お腹が"})
    assert response.json() == {"draft_text": "お腹が"}
    assert (await client.get("/session")).json()["draft_text"] == "お腹が"


@pytest.mark.asyncio
async def test_location_is_set_once_and_forwarded(client, fake_model):
    response = await client.put("/session/location", json={"latitude": 35.68, "longitude": 139.76})
    assert response.status_code == 200
    response = await client.put("/session/location", json={"latitude": 34.69, "longitude": 135.50})
    assert response.status_code == 409

    await client.post("/session/messages", json={"text": "近くの病院"})
    location = fake_model.calls[0]["location"]
    assert (location.latitude, location.longitude) == (35.68, 139.76)


@pytest.mark.asyncio
async def test_invalid_location_is_rejected(client):
    response = await client.put("/session/location", json={"latitude": 123.0, "longitude": 0.0})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_reset_starts_a_fresh_session(client):
    for i in range(10):
        await client.post("/session/messages", json={"text": f"質問{i}"})
    assert (await client.get("/session")).json()["limit_reached"] is True

    response = await client.post("/session/reset")
    assert response.status_code == 200
    body = response.json()
    assert len(body["messages"]) == 1
    assert body["limit_reached"] is False
    assert (await client.get("/session")).json()["turn_count"] == 0


@pytest.mark.asyncio
async def test_snapshot_events_follow_store_changes():
    store = SessionStore()
    events = session_api.snapshot_events(store)

    first = await events.__anext__()
    assert first.startswith("event: snapshot\n")

    store.append(Message(role=Role.USER, text="頭痛"))
    second = await events.__anext__()
    assert second.startswith("event: message_appended\n")
    assert "頭痛" in second

    await events.aclose()
    assert store._listeners == []
