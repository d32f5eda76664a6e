from __future__ import annotations
import base64
import json
import httpx
from typing import Any, Dict, List, Optional
from .settings import settings


def image_part(data: bytes, mime_type: str) -> Dict[str, Any]:
	return {"inline_data": {"mime_type": mime_type, "data": base64.b64encode(data).decode("ascii")}}


def parse_json_reply(text: str) -> Dict[str, Any]:
	"""Decode a model reply that should be a JSON object, tolerating ``` fences."""
	cleaned = text.strip()
	if cleaned.startswith("```"):
		cleaned = cleaned.strip("`")
		if cleaned.lower().startswith("json"):
			cleaned = cleaned[4:]
	start, end = cleaned.find("{"), cleaned.rfind("}")
	if start == -1 or end < start:
		raise ValueError(f"no JSON object in model reply: {text[:200]!r}")
	return json.loads(cleaned[start:end + 1])


class GeminiClient:
	def __init__(self, api_key: Optional[str] = None, *, base_url: Optional[str] = None, model: Optional[str] = None, timeout: float = 30) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise ValueError("GEMINI_API_KEY is not configured")
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
		self._client = httpx.AsyncClient(timeout=timeout)

	async def generate_multimodal(self, parts: List[Dict[str, Any]], *, json_mode: bool = False) -> str:
		return await self._post_payload(self._payload(parts, json_mode=json_mode))

	def _payload(self, parts: List[Dict[str, Any]], *, json_mode: bool) -> Dict[str, Any]:
		payload: Dict[str, Any] = {"contents": [{"role": "user", "parts": parts}]}
		if json_mode:
			payload["generationConfig"] = {"responseMimeType": "application/json"}
		return payload

	async def _post_payload(self, payload: Dict[str, Any]) -> str:
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		r = await self._client.post(self.base_url, params=params, headers=headers, json=payload)
		r.raise_for_status()
		try:
			data = r.json()
			return data["candidates"][0]["content"]["parts"][0]["text"]
		except (ValueError, KeyError, IndexError, TypeError):
			raise RuntimeError(f"Unexpected Gemini response: {r.text[:500]}")

	async def aclose(self) -> None:
		await self._client.aclose()
