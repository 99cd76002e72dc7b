"""
Shared fixtures for the doctor chat tests.

The hosted model is never called: FakeModelClient stands in for it.
"""
import pytest

from doctor_chat.services.session_store import SessionStore
from helpers import FakeModelClient


@pytest.fixture
def store() -> SessionStore:
    return SessionStore()


@pytest.fixture
def fake_client() -> FakeModelClient:
    return FakeModelClient()
