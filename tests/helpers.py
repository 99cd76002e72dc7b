"""Test doubles and sample data shared by the test modules."""
from doctor_chat.models.message import Message, Role
from doctor_chat.services.gemini_service import ModelReply

PNG_URI = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mP8z8BQDwAEhQGAhKmMIQAAAABJRU5ErkJggg=="
JPEG_URI = "data:image/jpeg;base64,/9j/4AAQSkZJRgABAQAAAQABAAD/2wBDAP8="


class FakeModelClient:
    """Records what the orchestrator sends and answers with a canned reply, or raises."""

    def __init__(self, reply=None, error=None):
        self.reply = reply if reply is not None else ModelReply(text="お大事にしてください。")
        self.error = error
        self.calls = []

    async def chat(self, history, new_text, new_images, location):
        self.calls.append({
            "history": list(history),
            "new_text": new_text,
            "new_images": list(new_images),
            "location": location,
        })
        if self.error is not None:
            raise self.error
        return self.reply


def make_history(count: int, with_images: bool = False):
    """Alternating user/model messages, numbered so tests can tell them apart."""
    history = []
    for i in range(count):
        role = Role.USER if i % 2 == 0 else Role.MODEL
        images = (PNG_URI,) if with_images else ()
        history.append(Message(role=role, text=f"message {i}", images=images))
    return history
