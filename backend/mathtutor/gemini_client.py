from __future__ import annotations
import logging
import httpx
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence
from .settings import settings

logger = logging.getLogger(__name__)


class MissingCredentialsError(ValueError):
	"""Raised when the text-generation API key is not configured."""


class UpstreamError(RuntimeError):
	"""Raised when the text-generation service cannot produce a reply."""


def require_credentials() -> str:
	if not settings.gemini_api_key:
		raise MissingCredentialsError("GEMINI_API_KEY is not configured")
	return settings.gemini_api_key


# Gemini only knows "user" and "model" turns; system notes from the chat log ride along as user turns
_GEMINI_ROLES = {"assistant": "model", "user": "user", "system": "user"}


class GeminiClient:
	def __init__(self, api_key: Optional[str] = None, *, base_url: Optional[str] = None, model: Optional[str] = None) -> None:
		self.api_key = api_key or require_credentials()
		self.model = model or settings.gemini_model
		self.provider = settings.gemini_provider
		if self.provider == "vertex":
			region = settings.vertex_region
			project = settings.vertex_project or "placeholder-project"
			# Vertex AI Generative REST endpoint (API key via header)
			self.base_url = base_url or (
				f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}/publishers/google/models/{self.model}:generateContent"
			)
			self._auth_in_query = False
		else:
			# Google AI Studio (Generative Language API)
			self.base_url = base_url or f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"
			self._auth_in_query = True
		self._client = httpx.AsyncClient(timeout=30)
		self._fallback_client: Optional[httpx.AsyncClient] = None
		self._fallback_enabled = bool(settings.openrouter_api_key)
		self._openrouter_api_key = settings.openrouter_api_key
		self._openrouter_model = settings.openrouter_model
		self._openrouter_base_url = settings.openrouter_base_url
		self._openrouter_headers = {
			"Authorization": f"Bearer {self._openrouter_api_key}" if self._openrouter_api_key else "",
			"Content-Type": "application/json",
			"HTTP-Referer": settings.openrouter_referer,
			"X-Title": settings.openrouter_title,
		}
		if self._fallback_enabled:
			self._fallback_client = httpx.AsyncClient(timeout=30)

	async def generate(self, prompt: str, *, thinking_budget: Optional[int] = None) -> str:
		payload: Dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
		return await self._post_payload(
			payload,
			thinking_budget=thinking_budget,
			fallback_messages=[{"role": "user", "content": prompt}],
		)

	async def chat(
		self,
		system: str,
		messages: Sequence[Dict[str, str]],
		*,
		temperature: Optional[float] = None,
		max_tokens: Optional[int] = None,
		thinking_budget: Optional[int] = 0,
	) -> str:
		"""Run one completion over a system prompt and a role-tagged message list.

		Messages use the chat-log shape ``{"role": ..., "content": ...}``.
		"""
		contents: List[Dict[str, Any]] = [
			{"role": _GEMINI_ROLES.get(m["role"], "user"), "parts": [{"text": m["content"]}]}
			for m in messages
		]
		payload: Dict[str, Any] = {
			"systemInstruction": {"parts": [{"text": system}]},
			"contents": contents,
		}
		generation_config: Dict[str, Any] = {}
		if temperature is not None:
			generation_config["temperature"] = temperature
		if max_tokens is not None:
			generation_config["maxOutputTokens"] = max_tokens
		if generation_config:
			payload["generationConfig"] = generation_config
		fallback_messages = [{"role": "system", "content": system}, *[dict(m) for m in messages]]
		return await self._post_payload(
			payload,
			thinking_budget=thinking_budget,
			fallback_messages=fallback_messages,
			temperature=temperature,
			max_tokens=max_tokens,
		)

	async def _post_payload(
		self,
		payload: Dict[str, Any],
		*,
		thinking_budget: Optional[int] = None,
		fallback_messages: Optional[List[Dict[str, str]]],
		temperature: Optional[float] = None,
		max_tokens: Optional[int] = None,
	) -> str:
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		if thinking_budget is not None:
			try:
				budget_tokens = int(thinking_budget)
			except (TypeError, ValueError):
				budget_tokens = 0
			generation_config = dict(payload.get("generationConfig") or {})
			generation_config["thinkingConfig"] = {"thinkingBudget": budget_tokens}
			payload = {**payload, "generationConfig": generation_config}
		last_error: Optional[Exception] = None
		try:
			r = await self._client.post(self.base_url, params=params, headers=headers, json=payload)
			r.raise_for_status()
		except httpx.HTTPStatusError as http_err:
			if thinking_budget is not None and http_err.response.status_code == 400:
				# Models without thinking support reject thinkingConfig with a 400; resend once without it.
				# Any other status goes straight back to the caller.
				fallback_payload = dict(payload)
				generation_config = dict(fallback_payload.get("generationConfig") or {})
				generation_config.pop("thinkingConfig", None)
				if generation_config:
					fallback_payload["generationConfig"] = generation_config
				else:
					fallback_payload.pop("generationConfig", None)
				try:
					r = await self._client.post(self.base_url, params=params, headers=headers, json=fallback_payload)
					r.raise_for_status()
				except httpx.HTTPError as err:
					last_error = err
			else:
				last_error = http_err
		except httpx.RequestError as net_err:
			last_error = net_err
		if last_error is None:
			try:
				data = r.json()
				return data["candidates"][0]["content"]["parts"][0]["text"]
			except (ValueError, KeyError, IndexError, TypeError):
				last_error = UpstreamError(f"Unexpected Gemini response: {r.text}")
		logger.warning("Gemini call failed: %s", last_error)
		if not self._fallback_enabled or fallback_messages is None:
			raise UpstreamError(f"Gemini call failed and no fallback configured: {last_error}") from last_error
		return await self._fallback_generate(fallback_messages, last_error, temperature=temperature, max_tokens=max_tokens)

	async def aclose(self) -> None:
		await self._client.aclose()
		if self._fallback_client is not None:
			await self._fallback_client.aclose()

	async def _fallback_generate(
		self,
		messages: List[Dict[str, str]],
		primary_error: Optional[Exception],
		*,
		temperature: Optional[float] = None,
		max_tokens: Optional[int] = None,
	) -> str:
		if not self._fallback_client or not self._openrouter_api_key:
			raise UpstreamError("Fallback requested but OpenRouter is not configured") from primary_error
		headers = {k: v for k, v in self._openrouter_headers.items() if v}
		payload: Dict[str, Any] = {
			"model": self._openrouter_model,
			"messages": messages,
		}
		if temperature is not None:
			payload["temperature"] = temperature
		if max_tokens is not None:
			payload["max_tokens"] = max_tokens
		try:
			r = await self._fallback_client.post(
				self._openrouter_base_url,
				headers=headers,
				json=payload,
			)
			r.raise_for_status()
			data = r.json()
			return data["choices"][0]["message"]["content"]
		except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as fallback_err:
			raise UpstreamError(
				f"Gemini primary call failed ({primary_error}); fallback via OpenRouter also failed"
			) from fallback_err


async def get_llm_client() -> AsyncIterator[GeminiClient]:
	"""FastAPI dependency yielding a client that is closed after the request."""
	client = GeminiClient()
	try:
		yield client
	finally:
		await client.aclose()
