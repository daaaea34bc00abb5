from datetime import datetime, timedelta

from arab_exam.models import UserExamAttempt
from arab_exam.routers.progress import compute_stats


def _attempt(completed_at, percentage, minutes=30, status="COMPLETED"):
	return UserExamAttempt(
		status=status,
		started_at=completed_at - timedelta(minutes=minutes),
		completed_at=completed_at,
		percentage=percentage,
	)


class TestComputeStats:
	# Wednesday
	now = datetime(2026, 4, 15, 12, 0)

	def test_empty(self):
		stats = compute_stats([], self.now)
		assert stats["examsTaken"] == 0
		assert stats["averageScore"] == 0
		assert [d["ball"] for d in stats["last7DaysData"]] == [0] * 7
		assert stats["last7DaysData"][-1]["day"] == "Wed"

	def test_month_counts_and_growth(self):
		attempts = [
			_attempt(self.now - timedelta(days=1), 80),
			_attempt(self.now - timedelta(days=2), 60),
			_attempt(self.now - timedelta(days=10), 50),
			_attempt(datetime(2026, 3, 20), 40),
			UserExamAttempt(status="IN_PROGRESS", started_at=self.now),
		]
		stats = compute_stats(attempts, self.now)
		assert stats["examsTaken"] == 4
		assert stats["examsThisMonth"] == 3
		assert stats["examsThisMonthDiff"] == 2
		assert stats["averageScore"] == round((80 + 60 + 50 + 40) / 4)
		assert stats["scoreGrowth"] == 20
		assert stats["totalStudyMinutes"] == 120

	def test_week_starts_on_sunday(self):
		sunday = datetime(2026, 4, 12, 9, 0)
		attempts = [
			_attempt(sunday, 70, minutes=45),
			_attempt(sunday - timedelta(hours=12), 70, minutes=20),
		]
		stats = compute_stats(attempts, self.now)
		assert stats["studyMinutesThisWeek"] == 45

	def test_half_points_round_up(self):
		attempts = [
			_attempt(self.now - timedelta(days=1), 80),
			_attempt(self.now - timedelta(days=1), 65),
		]
		stats = compute_stats(attempts, self.now)
		assert stats["averageScore"] == 73
		assert stats["last7DaysData"][-2]["ball"] == 73


class TestProgressRoutes:
	def test_defaults_for_new_user(self, client, student):
		headers, _ = student
		body = client.get("/api/progress", headers=headers).json()
		assert body["totalExamsTaken"] == 0
		assert body["currentCefrEstimate"] is None

	def test_stats_without_attempts(self, client, student):
		headers, _ = student
		body = client.get("/api/progress/stats", headers=headers).json()
		assert body["examsTaken"] == 0
		assert body["skillScores"] is None

	def test_unfinished_attempts_do_not_crowd_out_completed(self, client, student, db):
		headers, user = student
		finished_at = datetime.utcnow() - timedelta(days=1)
		db.add(
			UserExamAttempt(
				user_id=user["id"],
				status="COMPLETED",
				started_at=finished_at - timedelta(minutes=30),
				completed_at=finished_at,
				percentage=70,
			)
		)
		for _ in range(100):
			db.add(UserExamAttempt(user_id=user["id"], status="IN_PROGRESS", completed_at=datetime.utcnow()))
		db.commit()
		body = client.get("/api/progress/stats", headers=headers).json()
		assert body["examsTaken"] == 1
		assert body["averageScore"] == 70
