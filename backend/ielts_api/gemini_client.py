from __future__ import annotations
import logging
import httpx
from typing import Any, Dict, Optional
from .errors import GenerationUnavailable
from .settings import settings

logger = logging.getLogger(__name__)


class GeminiClient:
	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		model: Optional[str] = None,
		timeout: Optional[float] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise GenerationUnavailable("GEMINI_API_KEY is not configured")
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
		self._client = httpx.AsyncClient(timeout=timeout or settings.gemini_timeout_seconds, transport=transport)

	async def generate(self, prompt: str, *, json_output: bool = False, thinking_budget: Optional[int] = None) -> str:
		payload: Dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
		generation_config: Dict[str, Any] = {}
		if json_output:
			generation_config["responseMimeType"] = "application/json"
		if thinking_budget is not None:
			generation_config["thinkingConfig"] = {"thinkingBudget": int(thinking_budget)}
		if generation_config:
			payload["generationConfig"] = generation_config
		return await self._post_payload(payload)

	async def _post_payload(self, payload: Dict[str, Any]) -> str:
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		# Single attempt; callers decide whether to try again
		try:
			r = await self._client.post(self.base_url, params=params, headers=headers, json=payload)
			r.raise_for_status()
		except httpx.HTTPStatusError as http_err:
			logger.warning("Gemini returned HTTP %s", http_err.response.status_code)
			raise GenerationUnavailable(f"Gemini request failed with status {http_err.response.status_code}") from http_err
		except httpx.RequestError as net_err:
			logger.warning("Gemini request error: %s", net_err)
			raise GenerationUnavailable(f"Gemini request failed: {net_err.__class__.__name__}") from net_err
		try:
			data = r.json()
			parts = data["candidates"][0]["content"]["parts"]
			return "".join(p.get("text", "") for p in parts)
		except (ValueError, KeyError, IndexError, TypeError) as err:
			raise GenerationUnavailable("Unexpected Gemini response shape") from err

	async def aclose(self) -> None:
		await self._client.aclose()


# Process-wide client; created on first use and closed on shutdown
_shared_client: Optional[GeminiClient] = None


def get_gemini_client() -> GeminiClient:
	global _shared_client
	if _shared_client is None:
		_shared_client = GeminiClient()
	return _shared_client


async def close_gemini_client() -> None:
	global _shared_client
	if _shared_client is not None:
		await _shared_client.aclose()
		_shared_client = None
