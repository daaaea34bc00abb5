import json
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..cefr_scoring import round_half_up
from ..db import get_db
from ..models import User, UserExamAttempt, UserProgress
from .auth import get_current_user

router = APIRouter(prefix="/progress", tags=["progress"])

DAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


def _load_skill_scores(progress: Optional[UserProgress]) -> Optional[Dict[str, Any]]:
    if progress is None or not progress.skill_scores:
        return None
    try:
        return json.loads(progress.skill_scores)
    except ValueError:
        return None


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _minutes(a: UserExamAttempt) -> float:
    return (a.completed_at - a.started_at).total_seconds() / 60


def compute_stats(attempts: Sequence[UserExamAttempt], now: datetime) -> Dict[str, Any]:
    """Dashboard numbers for a user's attempts, relative to ``now``."""
    finished = [a for a in attempts if a.status == "COMPLETED" and a.completed_at is not None]
    scored = [a for a in finished if a.percentage is not None]

    start_of_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    start_of_last_month = (start_of_month - timedelta(days=1)).replace(day=1)
    # weeks start on Sunday
    start_of_week = (now - timedelta(days=(now.weekday() + 1) % 7)).replace(hour=0, minute=0, second=0, microsecond=0)
    seven_days_ago = now - timedelta(days=7)
    fourteen_days_ago = now - timedelta(days=14)

    exams_this_month = sum(1 for a in finished if a.completed_at >= start_of_month)
    exams_last_month = sum(1 for a in finished if start_of_last_month <= a.completed_at < start_of_month)

    last7 = [a.percentage for a in scored if a.completed_at >= seven_days_ago]
    prev7 = [a.percentage for a in scored if fourteen_days_ago <= a.completed_at < seven_days_ago]
    avg_prev7 = _mean(prev7)
    score_growth = round_half_up(_mean(last7) - avg_prev7) if avg_prev7 > 0 else 0

    last_7_days = []
    for i in range(6, -1, -1):
        day = (now - timedelta(days=i)).date()
        day_scores = [a.percentage for a in scored if a.completed_at.date() == day]
        last_7_days.append({"day": DAY_NAMES[day.weekday()], "ball": round_half_up(_mean(day_scores))})

    return {
        "examsTaken": len(finished),
        "examsThisMonth": exams_this_month,
        "examsThisMonthDiff": exams_this_month - exams_last_month,
        "averageScore": round_half_up(_mean([a.percentage for a in scored])),
        "scoreGrowth": score_growth,
        "totalStudyMinutes": round_half_up(sum(_minutes(a) for a in finished)),
        "studyMinutesThisWeek": round_half_up(sum(_minutes(a) for a in finished if a.completed_at >= start_of_week)),
        "last7DaysData": last_7_days,
    }


@router.get("")
async def get_progress(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    progress = db.query(UserProgress).filter(UserProgress.user_id == user.id).first()
    if progress is None:
        return {
            "totalExamsTaken": 0,
            "currentCefrEstimate": None,
            "currentStreakDays": 0,
            "skillScores": None,
            "lastActivityAt": None,
        }
    return {
        "totalExamsTaken": progress.total_exams_taken,
        "currentCefrEstimate": progress.current_cefr_estimate,
        "currentStreakDays": progress.current_streak_days,
        "skillScores": _load_skill_scores(progress),
        "lastActivityAt": progress.last_activity_at.isoformat() if progress.last_activity_at else None,
    }


@router.get("/stats")
async def get_stats(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    attempts = (
        db.query(UserExamAttempt)
        .filter(UserExamAttempt.user_id == user.id, UserExamAttempt.status == "COMPLETED")
        .order_by(UserExamAttempt.completed_at.desc())
        .limit(100)
        .all()
    )
    stats = compute_stats(attempts, datetime.utcnow())
    progress = db.query(UserProgress).filter(UserProgress.user_id == user.id).first()
    stats["skillScores"] = _load_skill_scores(progress)
    return stats
