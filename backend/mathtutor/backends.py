from __future__ import annotations
from typing import Any, Callable, Dict, Optional, Protocol, Sequence

import httpx

from .gemini_client import GeminiClient, UpstreamError
from .routers.evaluator import evaluate
from .routers.guardrail import check_safety
from .routers.tutor import respond
from .schemas import Evaluation, Message, Verdict


class TutorBackend(Protocol):
    """The three calls a turn is made of."""

    async def check_safety(self, message: str, time_elapsed: float, warning_count: int) -> Verdict: ...

    async def respond(self, message: str, messages: Sequence[Message]) -> str: ...

    async def evaluate(self, message: str, messages: Sequence[Message], current_step: Optional[int] = None) -> Evaluation: ...


class LocalBackend:
    """Runs the endpoint logic in-process, one LLM client per call."""

    def __init__(self, client_factory: Callable[[], GeminiClient] = GeminiClient) -> None:
        self._client_factory = client_factory

    async def check_safety(self, message: str, time_elapsed: float, warning_count: int) -> Verdict:
        client = self._client_factory()
        try:
            return await check_safety(client, message, time_elapsed, warning_count)
        finally:
            await client.aclose()

    async def respond(self, message: str, messages: Sequence[Message]) -> str:
        client = self._client_factory()
        try:
            return await respond(client, message, messages)
        finally:
            await client.aclose()

    async def evaluate(self, message: str, messages: Sequence[Message], current_step: Optional[int] = None) -> Evaluation:
        client = self._client_factory()
        try:
            return await evaluate(client, message, messages, current_step)
        finally:
            await client.aclose()


class HttpBackend:
    """Talks to a running server's /guardrail, /tutor and /evaluator endpoints."""

    def __init__(self, base_url: str, *, client: Optional[httpx.AsyncClient] = None, timeout: float = 30) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        r = await self._client.post(path, json=body)
        try:
            data = r.json()
        except ValueError:
            data = {}
        if r.is_error:
            raise UpstreamError(data.get("error") if isinstance(data, dict) and data.get("error") else f"HTTP error! status: {r.status_code}")
        if not isinstance(data, dict):
            raise UpstreamError(f"Unexpected response from {path}")
        return data

    async def check_safety(self, message: str, time_elapsed: float, warning_count: int) -> Verdict:
        data = await self._post("/guardrail", {"message": message, "timeElapsed": time_elapsed, "warningCount": warning_count})
        return Verdict.model_validate(data)

    async def respond(self, message: str, messages: Sequence[Message]) -> str:
        data = await self._post("/tutor", {"message": message, "messages": [m.model_dump() for m in messages]})
        reply = data.get("reply")
        if not reply:
            raise UpstreamError("No reply in tutor response")
        return reply

    async def evaluate(self, message: str, messages: Sequence[Message], current_step: Optional[int] = None) -> Evaluation:
        body: Dict[str, Any] = {"message": message, "messages": [m.model_dump() for m in messages]}
        if current_step is not None:
            body["currentStep"] = current_step
        data = await self._post("/evaluator", body)
        return Evaluation.model_validate(data)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
