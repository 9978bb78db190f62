import os
import tempfile
from pathlib import Path

import pytest

# Point the app at a throwaway database before anything imports it
_TMP_DIR = Path(tempfile.mkdtemp(prefix="livenotes-tests-"))
os.environ["LIVENOTES_DB_PATH"] = str(_TMP_DIR / "test.db")
os.environ.setdefault("LIVENOTES_LOG_LEVEL", "WARNING")

from livenotes.errors import ModelNotFoundError  # noqa: E402
from livenotes.services.providers import ModelProvider, Provider  # noqa: E402
from livenotes.services.quality import NotesState, normalize_notes_state  # noqa: E402


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    """Async sleep that records delays and advances a FakeClock instead of waiting."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.delays = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        self.clock.advance(seconds)


class FakeProvider(ModelProvider):
    """Scripted provider: replies are returned (or raised) in order."""

    def __init__(self, replies=(), *, name=Provider.GEMINI, models=None, missing=()):
        super().__init__()
        self.name = name
        self.supports_listing = models is not None
        self.models = list(models or [])
        self.replies = list(replies)
        self.missing = set(missing)
        self.calls = []
        self.list_calls = 0

    def complete_text(self, api_key, model, req):
        self.calls.append((model, req))
        if model in self.missing:
            raise ModelNotFoundError(f"model {model} not found", status=404, provider=self.name.value)
        reply = self.replies.pop(0) if self.replies else ""
        if isinstance(reply, Exception):
            raise reply
        return reply

    def list_models(self, api_key):
        self.list_calls += 1
        return list(self.models)


class MemoryNotes:
    def __init__(self, initial=None) -> None:
        self.state = normalize_notes_state(initial)
        self.saves = 0

    def get(self) -> NotesState:
        return normalize_notes_state(self.state)

    def save(self, notes) -> NotesState:
        self.saves += 1
        self.state = normalize_notes_state(notes)
        return self.state

    def clear(self) -> NotesState:
        self.state = NotesState()
        return self.state


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_sleep(clock):
    return FakeSleep(clock)


@pytest.fixture(scope="module")
def client():
    from fastapi.testclient import TestClient

    from livenotes.app import app

    with TestClient(app) as c:
        c.post("/v1/clear_session")
        yield c


@pytest.fixture
def app_state(client):
    return client.app.state.state
