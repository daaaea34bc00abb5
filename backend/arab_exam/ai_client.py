from __future__ import annotations
import json
import logging
import re
import httpx
from typing import Any, Dict, List, Optional
from pydantic import BaseModel
from .settings import settings

logger = logging.getLogger(__name__)

JSON_ONLY_HINT = "IMPORTANT: respond with valid JSON only. Do not write any other text."


class AIResponse(BaseModel):
	text: str
	provider: str  # "gemini", "openai" or "none"
	tokens_used: Optional[int] = None


def is_ai_available() -> bool:
	return bool(settings.gemini_api_key or settings.openai_api_key)


class AIClient:
	"""Gemini first, OpenAI chat completions as fallback."""

	def __init__(self, *, model: Optional[str] = None, fallback_model: Optional[str] = None) -> None:
		self.gemini_api_key = settings.gemini_api_key
		self.model = model or settings.gemini_model
		self.base_url = f"{settings.gemini_base_url}/{self.model}:generateContent"
		self._client = httpx.AsyncClient(timeout=settings.ai_timeout_seconds)
		self._fallback_client: Optional[httpx.AsyncClient] = None
		self._fallback_enabled = bool(settings.openai_api_key)
		self._openai_model = fallback_model or settings.openai_model
		self._openai_base_url = settings.openai_base_url
		self._openai_headers = {
			"Authorization": f"Bearer {settings.openai_api_key}" if settings.openai_api_key else "",
			"Content-Type": "application/json",
		}
		if self._fallback_enabled:
			self._fallback_client = httpx.AsyncClient(timeout=settings.ai_timeout_seconds)

	async def generate(
		self,
		messages: List[Dict[str, str]],
		*,
		max_tokens: int = 4000,
		json_mode: bool = False,
		temperature: Optional[float] = None,
	) -> AIResponse:
		if temperature is None:
			temperature = 0.3 if json_mode else 0.7
		if self.gemini_api_key:
			try:
				return await self._gemini_generate(messages, max_tokens=max_tokens, json_mode=json_mode, temperature=temperature)
			except Exception as err:
				logger.warning("Gemini call failed, trying OpenAI: %s", err)
		if self._fallback_enabled:
			try:
				return await self._fallback_generate(messages, max_tokens=max_tokens, json_mode=json_mode, temperature=temperature)
			except Exception as err:
				logger.error("OpenAI fallback failed too: %s", err)
		return AIResponse(text="", provider="none")

	async def _gemini_generate(
		self,
		messages: List[Dict[str, str]],
		*,
		max_tokens: int,
		json_mode: bool,
		temperature: float,
	) -> AIResponse:
		system_text = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
		if json_mode:
			system_text = f"{system_text}\n\n{JSON_ONLY_HINT}".strip()
		contents = [
			{"role": "model" if m["role"] == "assistant" else "user", "parts": [{"text": m["content"]}]}
			for m in messages
			if m["role"] != "system"
		]
		payload: Dict[str, Any] = {
			"contents": contents,
			"generationConfig": {
				"maxOutputTokens": max_tokens,
				"temperature": temperature,
				"responseMimeType": "application/json" if json_mode else "text/plain",
			},
		}
		if system_text:
			payload["systemInstruction"] = {"parts": [{"text": system_text}]}
		r = await self._client.post(self.base_url, params={"key": self.gemini_api_key}, json=payload)
		r.raise_for_status()
		try:
			data = r.json()
			text = data["candidates"][0]["content"]["parts"][0]["text"]
		except Exception:
			raise RuntimeError(f"Unexpected Gemini response: {r.text[:300]}")
		usage = data.get("usageMetadata") or {}
		return AIResponse(text=text.strip(), provider="gemini", tokens_used=usage.get("totalTokenCount"))

	async def _fallback_generate(
		self,
		messages: List[Dict[str, str]],
		*,
		max_tokens: int,
		json_mode: bool,
		temperature: float,
	) -> AIResponse:
		if not self._fallback_client:
			raise RuntimeError("Fallback requested but OpenAI is not configured")
		headers = {k: v for k, v in self._openai_headers.items() if v}
		payload: Dict[str, Any] = {
			"model": self._openai_model,
			"messages": messages,
			"max_tokens": max_tokens,
			"temperature": temperature,
		}
		if json_mode:
			payload["response_format"] = {"type": "json_object"}
		r = await self._fallback_client.post(self._openai_base_url, headers=headers, json=payload)
		r.raise_for_status()
		data = r.json()
		text = data["choices"][0]["message"]["content"] or ""
		usage = data.get("usage") or {}
		return AIResponse(text=text.strip(), provider="openai", tokens_used=usage.get("total_tokens"))

	async def aclose(self) -> None:
		await self._client.aclose()
		if self._fallback_client is not None:
			await self._fallback_client.aclose()


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
	try:
		data = json.loads(text)
		return data if isinstance(data, dict) else None
	except Exception:
		pass
	code_block = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
	if code_block:
		try:
			data = json.loads(code_block.group(1))
			if isinstance(data, dict):
				return data
		except Exception:
			pass
	first = text.find("{")
	last = text.rfind("}")
	if first != -1 and last > first:
		try:
			data = json.loads(text[first : last + 1])
			if isinstance(data, dict):
				return data
		except Exception:
			pass
	return None


async def ai_generate(
	messages: List[Dict[str, str]],
	*,
	max_tokens: int = 4000,
	json_mode: bool = False,
	temperature: Optional[float] = None,
) -> AIResponse:
	client = AIClient()
	try:
		return await client.generate(messages, max_tokens=max_tokens, json_mode=json_mode, temperature=temperature)
	finally:
		await client.aclose()


async def ai_generate_json(
	messages: List[Dict[str, str]],
	*,
	max_tokens: int = 4000,
	temperature: Optional[float] = None,
) -> tuple[Optional[Dict[str, Any]], str]:
	result = await ai_generate(messages, max_tokens=max_tokens, json_mode=True, temperature=temperature)
	if not result.text:
		return None, result.provider
	data = extract_json_object(result.text)
	if data is None:
		logger.error("AI returned invalid JSON: %s", result.text[:200])
	return data, result.provider
