from __future__ import annotations
import logging
from typing import Optional, Tuple

from .ai_client import ai_generate, is_ai_available

logger = logging.getLogger(__name__)

_LANGUAGE_NAMES = {"ar": "Arabic", "ru": "Russian", "uz": "Uzbek"}


def build_system_prompt(language: str, level: Optional[str] = None) -> str:
	level_hint = f"The user's estimated CEFR level is {level}. " if level else ""
	answer_language = _LANGUAGE_NAMES.get(language, "Uzbek")
	return (
		"You are a tutor helping learners of Arabic (fus'ha) prepare for a CEFR exam. "
		f"{level_hint}Answer mainly in {answer_language}. Be short, precise and useful. "
		"Help with Arabic grammar, vocabulary and exam preparation."
	)


async def chat_with_tutor(message: str, language: str, level: Optional[str] = None) -> Tuple[str, Optional[int]]:
	"""Return the tutor's reply and the tokens it used. Raises RuntimeError when no reply is available."""
	if not is_ai_available():
		raise RuntimeError("AI is not configured (GEMINI_API_KEY or OPENAI_API_KEY required)")
	result = await ai_generate(
		[
			{"role": "system", "content": build_system_prompt(language, level)},
			{"role": "user", "content": message},
		],
		max_tokens=800,
	)
	if not result.text:
		raise RuntimeError("The AI tutor did not answer")
	logger.info("Tutor answered via %s (%s tokens)", result.provider, result.tokens_used)
	return result.text, result.tokens_used
