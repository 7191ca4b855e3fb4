from __future__ import annotations
import logging
import httpx
from fastapi import HTTPException
from typing import Any, Callable, Dict, Optional
from .settings import settings

logger = logging.getLogger(__name__)


class GeminiError(RuntimeError):
	"""The scoring engine could not be reached or answered with an error."""


class GeminiClient:
	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		model: Optional[str] = None,
		max_output_tokens: Optional[int] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise ValueError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model_free
		self.max_output_tokens = max_output_tokens or settings.scoring_max_output_tokens
		self.provider = settings.gemini_provider
		self._base_url_override = base_url
		if self.provider == "vertex":
			self._auth_in_query = False
		else:
			self._auth_in_query = True
		self._client = httpx.AsyncClient(timeout=60, transport=transport)

	def _url_for(self, model: str) -> str:
		if self._base_url_override:
			return self._base_url_override
		if self.provider == "vertex":
			region = settings.vertex_region
			project = settings.vertex_project or "placeholder-project"
			# Vertex AI Generative REST endpoint (API key via header)
			return (
				f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}/publishers/google/models/{model}:generateContent"
			)
		# Google AI Studio (Generative Language API)
		return f"https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

	async def generate(self, prompt: str, *, model: Optional[str] = None, max_output_tokens: Optional[int] = None) -> str:
		payload: Dict[str, Any] = {
			"contents": [{"role": "user", "parts": [{"text": prompt}]}],
			"generationConfig": {"maxOutputTokens": int(max_output_tokens or self.max_output_tokens)},
		}
		return await self._post_payload(payload, model=model or self.model)

	async def _post_payload(self, payload: Dict[str, Any], *, model: str) -> str:
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		try:
			r = await self._client.post(self._url_for(model), params=params, headers=headers, json=payload)
			r.raise_for_status()
		except httpx.HTTPStatusError as http_err:
			logger.error("Gemini %s returned HTTP %s", model, http_err.response.status_code)
			raise GeminiError(f"Gemini returned HTTP {http_err.response.status_code}") from http_err
		except httpx.RequestError as net_err:
			logger.error("Gemini %s request failed: %s", model, net_err)
			raise GeminiError(f"Gemini request failed: {net_err}") from net_err
		try:
			data = r.json()
			return data["candidates"][0]["content"]["parts"][0]["text"]
		except (ValueError, KeyError, IndexError, TypeError) as err:
			raise GeminiError(f"Unexpected Gemini response: {r.text[:200]}") from err

	async def aclose(self) -> None:
		await self._client.aclose()


ScoringClientFactory = Callable[[], GeminiClient]


def get_client_factory() -> ScoringClientFactory:
	"""Routes build the client from this only when they call the engine."""
	return GeminiClient


def open_client(factory: ScoringClientFactory) -> GeminiClient:
	try:
		return factory()
	except ValueError as e:
		logger.error("Scoring client unavailable: %s", e)
		raise HTTPException(status_code=500, detail=str(e))
