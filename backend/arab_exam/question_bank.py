from __future__ import annotations
import random
from typing import Dict, List

from sqlalchemy.orm import Session

from .cefr_scoring import MAX_SCORE_PER_SKILL
from .models import QuestionBank

BANK_SECTIONS: List[str] = ["listening", "reading", "language_use"]

# Questions drawn per section for each level
SECTION_COUNTS: Dict[str, Dict[str, int]] = {
	"A1": {"listening": 15, "reading": 15, "language_use": 15},
	"A2": {"listening": 15, "reading": 15, "language_use": 18},
	"B1": {"listening": 18, "reading": 18, "language_use": 22},
	"B2": {"listening": 20, "reading": 20, "language_use": 25},
	"C1": {"listening": 20, "reading": 20, "language_use": 28},
	"C2": {"listening": 20, "reading": 20, "language_use": 30},
}


def get_counts_for_level(level: str) -> Dict[str, int]:
	return SECTION_COUNTS[level]


def points_per_question(count: int) -> float:
	if count <= 0:
		return 0.0
	return round(MAX_SCORE_PER_SKILL / count, 2)


def select_bank_questions(db: Session, level: str, section: str, count: int) -> List[QuestionBank]:
	# Pool of twice the needed size, then a random subset of it
	rows = (
		db.query(QuestionBank)
		.filter(QuestionBank.level == level, QuestionBank.section == section)
		.order_by(QuestionBank.id.asc())
		.limit(count * 2)
		.all()
	)
	random.shuffle(rows)
	return rows[:count]


def select_questions_for_attempt(db: Session, level: str) -> Dict[str, List[QuestionBank]]:
	counts = get_counts_for_level(level)
	return {section: select_bank_questions(db, level, section, counts[section]) for section in BANK_SECTIONS}


def count_by_section(db: Session) -> Dict[str, int]:
	return {section: db.query(QuestionBank).filter(QuestionBank.section == section).count() for section in BANK_SECTIONS}
