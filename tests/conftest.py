import os
import tempfile
from collections.abc import AsyncGenerator
from pathlib import Path

_TEST_DIR = Path(tempfile.mkdtemp(prefix="mathtutor-tests-"))
os.environ["GEMINI_API_KEY"] = "test-key"
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR / 'test.db'}"
os.environ.pop("OPENROUTER_API_KEY", None)

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from mathtutor.db import Base, engine
from mathtutor.gemini_client import get_llm_client
from mathtutor.main import app
from mathtutor.schemas import Evaluation, Verdict


class FakeLLM:
    """Stands in for GeminiClient; hands out scripted replies in order."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    def _next(self):
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def chat(self, system, messages, **kwargs):
        self.calls.append({"system": system, "messages": list(messages), **kwargs})
        return self._next()

    async def generate(self, prompt, **kwargs):
        self.calls.append({"prompt": prompt, **kwargs})
        return self._next()

    async def aclose(self):
        pass


class ScriptedBackend:
    """Backend double recording every call the orchestrator makes."""

    def __init__(self, *, verdicts=(), replies=(), evaluations=()):
        self.verdicts = list(verdicts)
        self.replies = list(replies)
        self.evaluations = list(evaluations)
        self.calls = []

    @staticmethod
    def _take(queue, default):
        item = queue.pop(0) if queue else default
        if isinstance(item, Exception):
            raise item
        return item

    async def check_safety(self, message, time_elapsed, warning_count):
        self.calls.append(("check_safety", message, time_elapsed, warning_count))
        return self._take(self.verdicts, Verdict(safe=True))

    async def respond(self, message, messages):
        self.calls.append(("respond", message, list(messages)))
        return self._take(self.replies, "Nice! What shape does y = x² make?")

    async def evaluate(self, message, messages, current_step=None):
        self.calls.append(("evaluate", message, list(messages), current_step))
        return self._take(self.evaluations, Evaluation(score=3))

    def names(self):
        return [c[0] for c in self.calls]


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_llm():
    llm = FakeLLM()
    app.dependency_overrides[get_llm_client] = lambda: llm
    yield llm
    app.dependency_overrides.pop(get_llm_client, None)


@pytest_asyncio.fixture
async def test_client() -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
