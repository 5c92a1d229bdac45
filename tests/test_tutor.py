"""Tests for the tutor responder and the generic chat passthrough."""
import pytest

from mathtutor.routers.tutor import FALLBACK_REPLY, START_NUDGE, START_PROMPT, TUTOR_PROMPT, build_tutor_messages, respond
from mathtutor.schemas import START_SESSION, Message
from tests.conftest import FakeLLM


class TestBuildTutorMessages:
    def test_start_sentinel_ignores_history(self):
        system, turns = build_tutor_messages(START_SESSION, [Message(role="user", content="old")])
        assert system == START_PROMPT
        assert turns == [{"role": "user", "content": START_NUDGE}]

    def test_regular_turn_appends_message_after_context(self):
        history = [Message(role="assistant", content="Seen a U-shaped curve?"), Message(role="user", content="yes")]
        system, turns = build_tutor_messages("a bridge", history)
        assert system == TUTOR_PROMPT
        assert turns == [
            {"role": "assistant", "content": "Seen a U-shaped curve?"},
            {"role": "user", "content": "yes"},
            {"role": "user", "content": "a bridge"},
        ]


@pytest.mark.asyncio
async def test_respond_falls_back_on_empty_reply():
    assert await respond(FakeLLM("   "), "idk", []) == FALLBACK_REPLY


@pytest.mark.asyncio
async def test_respond_uses_short_reply_settings():
    llm = FakeLLM("Hey there! 👋 Ever seen a U-shaped curve in real life?")
    reply = await respond(llm, START_SESSION, [])
    assert reply.startswith("Hey there!")
    assert llm.calls[0]["temperature"] == 0.8
    assert llm.calls[0]["max_tokens"] == 150


class TestTutorEndpoint:
    @pytest.mark.asyncio
    async def test_returns_reply(self, test_client, fake_llm):
        fake_llm.replies.append("Think of a ball thrown in the air!")

        response = await test_client.post(
            "/tutor",
            json={"message": "idk", "messages": [{"role": "assistant", "content": "What makes a U shape?"}]},
        )

        assert response.status_code == 200
        assert response.json() == {"reply": "Think of a ball thrown in the air!"}
        assert fake_llm.calls[0]["messages"][-1] == {"role": "user", "content": "idk"}

    @pytest.mark.asyncio
    async def test_upstream_failure_returns_error_payload(self, test_client, fake_llm):
        fake_llm.replies.append(RuntimeError("model down"))

        response = await test_client.post("/tutor", json={"message": "idk", "messages": []})

        assert response.status_code == 500
        assert "error" in response.json()

    @pytest.mark.asyncio
    async def test_invalid_role_is_rejected(self, test_client, fake_llm):
        response = await test_client.post("/tutor", json={"message": "hi", "messages": [{"role": "robot", "content": "x"}]})
        assert response.status_code == 500


class TestChatEndpoint:
    @pytest.mark.asyncio
    async def test_passthrough(self, test_client, fake_llm):
        fake_llm.replies.append("4")

        response = await test_client.post("/chat", json={"message": "2+2?"})

        assert response.status_code == 200
        assert response.json() == {"message": "4"}
        assert fake_llm.calls[0]["prompt"] == "2+2?"

    @pytest.mark.asyncio
    async def test_failure(self, test_client, fake_llm):
        fake_llm.replies.append(RuntimeError("down"))

        response = await test_client.post("/chat", json={"message": "2+2?"})

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to process the request"}
