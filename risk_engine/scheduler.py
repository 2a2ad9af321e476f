from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .config import RAPID_CHECK_HOURS, SWEEP_CRON
from .data_pipeline import RiskHistoryStore
from .engine import RiskEngine
from .errors import RiskEngineError
from .scoring import risk_level_increased
from .trend import attach_trend
from .utils import utcnow

logger = logging.getLogger("scheduler")


class RiskSweepScheduler:
	"""Periodic reassessment of every student, storing results in the history store.

	The engine itself never schedules or persists; this is the caller that
	does both on a timer.
	"""

	def __init__(self, engine: RiskEngine, store: RiskHistoryStore, cron: str = SWEEP_CRON) -> None:
		self.engine = engine
		self.store = store
		self.cron = cron
		self.scheduler = BackgroundScheduler()

	def start(self) -> None:
		self.store.init_db()
		self.scheduler.add_job(
			self.recalculate_all, CronTrigger.from_crontab(self.cron), id="risk_sweep_job", replace_existing=True
		)
		self.scheduler.add_job(
			self.check_rapid_increases, "interval", hours=RAPID_CHECK_HOURS, id="rapid_increase_job", replace_existing=True
		)
		self.scheduler.start()
		logger.info(f"Scheduler started: risk sweep '{self.cron}', rapid increase check every {RAPID_CHECK_HOURS}h")

	def shutdown(self, wait: bool = False) -> None:
		if self.scheduler.running:
			self.scheduler.shutdown(wait=wait)
			logger.info("Scheduler stopped")

	def recalculate_all(self) -> Dict[str, Any]:
		logger.info("Starting scheduled risk recalculation for all students...")
		student_ids = self.engine.profiles.list_student_ids()
		successful = 0
		failed = 0
		level_changes = 0
		level_increases = 0
		for student_id in student_ids:
			try:
				previous = self.store.latest(student_id)
				assessment = self.engine.assess(student_id)
				# engines built without a history lookup still get a trend from the store
				if self.engine.previous_assessment is None:
					assessment = attach_trend(assessment, previous)
				self.store.append(assessment)
			except RiskEngineError as exc:
				failed += 1
				logger.error(f"Failed to calculate risk for student {student_id}: {exc}")
				continue
			except Exception as exc:
				failed += 1
				logger.exception(f"Unexpected error while recalculating risk for student {student_id}: {exc}")
				continue
			successful += 1
			old_level: Optional[str] = previous.risk_level if previous else None
			if old_level is not None and old_level != assessment.risk_level:
				level_changes += 1
				if risk_level_increased(old_level, assessment.risk_level):
					level_increases += 1
					logger.warning(
						f"Risk level increased for {student_id}: {old_level} -> {assessment.risk_level} "
						f"({assessment.total_risk_score:.2f})"
					)

		summary = {
			"total_students": len(student_ids),
			"successful": successful,
			"failed": failed,
			"risk_level_changes": level_changes,
			"risk_level_increases": level_increases,
			"completed_at": utcnow().isoformat(),
		}
		logger.info(f"Risk recalculation completed: {summary}")
		return summary

	def check_rapid_increases(self) -> List[Dict[str, Any]]:
		flagged = self.store.rapid_increases()
		for item in flagged:
			logger.warning(
				f"Rapid risk increase for {item['student_id']}: +{item['risk_increase']:.2f} "
				f"in {item['time_span_days']:.1f} days (now {item['current_risk']:.2f})"
			)
		if not flagged:
			logger.info("No rapid risk increases detected")
		return flagged
