"""
CEFR Scoring
============

Five skills are scored, each capped at 30 points:

- grammar (stored as the "language_use" section)
- reading
- listening
- speaking
- writing

The 0-150 aggregate is banded into the six CEFR levels:

	0   - 24  -> A1
	25  - 49  -> A2
	50  - 74  -> B1
	75  - 99  -> B2
	100 - 124 -> C1
	125 - 150 -> C2
"""

from __future__ import annotations

import math
from typing import Dict, List, Mapping

SKILLS: List[str] = ["grammar", "reading", "listening", "speaking", "writing"]

MAX_SCORE_PER_SKILL = 30

MAX_TOTAL_SCORE = len(SKILLS) * MAX_SCORE_PER_SKILL

CEFR_LEVELS: List[str] = ["A1", "A2", "B1", "B2", "C1", "C2"]

# Lower bound of each band, highest first
_CEFR_RANGES = [
	(125, "C2"),
	(100, "C1"),
	(75, "B2"),
	(50, "B1"),
	(25, "A2"),
	(0, "A1"),
]

CEFR_LEVEL_INFO: List[Dict[str, str]] = [
	{"level": "A1", "range": "0-24", "label": "Beginner"},
	{"level": "A2", "range": "25-49", "label": "Elementary"},
	{"level": "B1", "range": "50-74", "label": "Independent"},
	{"level": "B2", "range": "75-99", "label": "Upper intermediate"},
	{"level": "C1", "range": "100-124", "label": "Advanced"},
	{"level": "C2", "range": "125-150", "label": "Proficient"},
]

_FEEDBACK = {
	"A1": "CEFR A1 - beginner. You understand basic words and everyday phrases.",
	"A2": "CEFR A2 - elementary. You understand and use simple sentences on familiar everyday topics.",
	"B1": "CEFR B1 - independent user. You can communicate freely on familiar subjects.",
	"B2": "CEFR B2 - upper intermediate. You understand complex texts and speak with fluency.",
	"C1": "CEFR C1 - advanced. You use the language effectively for academic and professional purposes.",
	"C2": "CEFR C2 - proficient. Your command of the language is close to that of a native speaker.",
}


def round_half_up(value: float) -> int:
	# Python's round() is banker's rounding; halves round towards +infinity
	return math.floor(value + 0.5)


def is_valid_level(level: str | None) -> bool:
	return level in CEFR_LEVELS


def section_to_skill(section: str) -> str:
	"""Map a stored section name to one of the five skills.

	Unknown sections count towards grammar.
	"""
	s = "_".join((section or "").lower().split())
	if s in ("language_use", "grammar", "language"):
		return "grammar"
	if s in ("reading", "listening", "speaking", "writing"):
		return s
	return "grammar"


def skill_to_section(skill: str) -> str:
	if skill == "grammar":
		return "language_use"
	return skill


def determine_cefr_level(total_score: float) -> str:
	"""Return the CEFR level for a 0-150 aggregate score.

	The score is rounded and clamped to [0, 150] before banding, so the result
	is monotonic in the input.
	"""
	score = max(0, min(MAX_TOTAL_SCORE, round_half_up(total_score)))
	for lower, level in _CEFR_RANGES:
		if score >= lower:
			return level
	return "A1"


def calculate_cefr_result(skill_scores: Mapping[str, float]) -> Dict[str, object]:
	"""Clamp every skill to [0, 30], total them and band the total.

	Args:
		skill_scores: score per skill; missing skills count as zero

	Returns:
		Dictionary with keys:
		- totalScore: sum of the clamped skill scores
		- maxPossibleScore: always 150
		- percentage: rounded share of 150
		- cefrLevel: A1..C2
		- skillBreakdown: {skill: {score, max, percentage}}
	"""
	total = 0
	breakdown: Dict[str, Dict[str, int]] = {}
	for skill in SKILLS:
		raw = skill_scores.get(skill) or 0
		score = max(0, min(MAX_SCORE_PER_SKILL, round_half_up(float(raw))))
		total += score
		breakdown[skill] = {
			"score": score,
			"max": MAX_SCORE_PER_SKILL,
			"percentage": round_half_up(score / MAX_SCORE_PER_SKILL * 100),
		}
	return {
		"totalScore": total,
		"maxPossibleScore": MAX_TOTAL_SCORE,
		"percentage": round_half_up(total / MAX_TOTAL_SCORE * 100),
		"cefrLevel": determine_cefr_level(total),
		"skillBreakdown": breakdown,
	}


def cefr_feedback(level: str, total_score: float) -> str:
	message = _FEEDBACK.get(level, _FEEDBACK["A1"])
	return f"You scored {round_half_up(total_score)}/{MAX_TOTAL_SCORE}. {message}"
