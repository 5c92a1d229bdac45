"""Tests for the safety check: parsing, session policy overlays and the endpoint."""
import httpx
import pytest

from mathtutor.routers.guardrail import (
    TERMINATION_WARNING,
    TIMEOUT_WARNING,
    apply_policy_overlays,
    check_safety,
    parse_verdict,
)
from mathtutor.schemas import Verdict
from tests.conftest import FakeLLM


class TestParseVerdict:
    def test_safe_output(self):
        assert parse_verdict('{"safe": true}') == Verdict(safe=True, warning=None, severity=0)

    def test_unsafe_output_keeps_warning_and_severity(self):
        verdict = parse_verdict('```json\n{"safe": false, "warning": "Stay on math", "severity": 2}\n```')
        assert verdict == Verdict(safe=False, warning="Stay on math", severity=2)

    def test_malformed_output_defaults_to_safe(self):
        assert parse_verdict("I think this is fine") == Verdict(safe=True, warning=None, severity=0)

    def test_unsafe_severity_is_clamped(self):
        assert parse_verdict('{"safe": false, "severity": 9}').severity == 3
        assert parse_verdict('{"safe": false, "severity": "bad"}').severity == 1


class TestPolicyOverlays:
    @pytest.mark.parametrize("content_verdict", [Verdict(safe=True), Verdict(safe=False, warning="x", severity=2)])
    def test_slow_reply_forces_severity_one(self, content_verdict):
        verdict = apply_policy_overlays(content_verdict, 31, 0, inactivity_threshold=30, max_warnings=2)
        assert verdict == Verdict(safe=False, warning=TIMEOUT_WARNING, severity=1)

    def test_reply_at_threshold_is_not_forced(self):
        verdict = apply_policy_overlays(Verdict(safe=True), 30, 0, inactivity_threshold=30, max_warnings=2)
        assert verdict.safe is True

    @pytest.mark.parametrize("elapsed", [0, 5, 120])
    def test_two_prior_warnings_force_termination(self, elapsed):
        verdict = apply_policy_overlays(Verdict(safe=True), elapsed, 2, inactivity_threshold=30, max_warnings=2)
        assert verdict == Verdict(safe=False, warning=TERMINATION_WARNING, severity=3)

    def test_defaults_come_from_settings(self):
        assert apply_policy_overlays(Verdict(safe=True), 31, 0).severity == 1
        assert apply_policy_overlays(Verdict(safe=True), 0, 2).severity == 3


class TestCheckSafety:
    @pytest.mark.asyncio
    async def test_sends_only_the_message_with_guardrail_prompt(self):
        llm = FakeLLM('{"safe": true}')

        verdict = await check_safety(llm, "idk", 5, 0)

        assert verdict.safe is True
        call = llm.calls[0]
        assert call["messages"] == [{"role": "user", "content": "idk"}]
        assert "guardrail" in call["system"]
        assert call["temperature"] == 0.2
        assert call["max_tokens"] == 150

    @pytest.mark.asyncio
    async def test_overlay_wins_over_safe_content(self):
        llm = FakeLLM('{"safe": true}')
        verdict = await check_safety(llm, "what is a root?", 3, 2)
        assert verdict.severity == 3


class TestGuardrailEndpoint:
    @pytest.mark.asyncio
    async def test_returns_verdict(self, test_client, fake_llm):
        fake_llm.replies.append('{"safe": false, "warning": "Off topic", "severity": 1}')

        response = await test_client.post("/guardrail", json={"message": "tell me about football", "timeElapsed": 2, "warningCount": 0})

        assert response.status_code == 200
        assert response.json() == {"safe": False, "warning": "Off topic", "severity": 1}

    @pytest.mark.asyncio
    async def test_safe_verdict_omits_warning(self, test_client, fake_llm):
        fake_llm.replies.append('{"safe": true}')

        response = await test_client.post("/guardrail", json={"message": "idk", "timeElapsed": 5, "warningCount": 0})

        assert response.json() == {"safe": True, "severity": 0}

    @pytest.mark.asyncio
    async def test_transport_failure_is_500(self, test_client, fake_llm):
        fake_llm.replies.append(httpx.ConnectError("boom"))

        response = await test_client.post("/guardrail", json={"message": "idk", "timeElapsed": 0, "warningCount": 0})

        assert response.status_code == 500
        assert "error" in response.json()

    @pytest.mark.asyncio
    async def test_missing_fields_reported_as_500(self, test_client, fake_llm):
        response = await test_client.post("/guardrail", json={"timeElapsed": 0})

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to process the request"}
