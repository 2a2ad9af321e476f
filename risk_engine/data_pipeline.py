from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column, DateTime, Float, Integer, MetaData, String, create_engine, select
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import DB_URL, RAPID_INCREASE_DAYS, RAPID_INCREASE_POINTS, RAPID_WINDOW_DAYS
from .schemas import RiskAssessment
from .utils import utcnow

Base = declarative_base(metadata=MetaData())


class RiskAssessmentRecord(Base):
	__tablename__ = "risk_assessments"
	id = Column(Integer, primary_key=True, index=True)
	student_id = Column(String, index=True, nullable=False)
	calculated_at = Column(DateTime, default=datetime.utcnow, index=True)
	academic_year = Column(String, index=True)
	total_risk_score = Column(Float, index=True)
	risk_level = Column(String, index=True)
	payload = Column(JSON, nullable=False)

	def to_assessment(self) -> RiskAssessment:
		return RiskAssessment.model_validate(self.payload)


class RiskHistoryStore:
	"""Append-only history of risk assessments per student."""

	def __init__(self, db_url: str = DB_URL) -> None:
		if db_url == "sqlite://":
			# in-memory database shared by every session and thread
			self.engine = create_engine(
				db_url, echo=False, future=True, poolclass=StaticPool, connect_args={"check_same_thread": False}
			)
		else:
			if db_url.startswith("sqlite:///"):
				Path(db_url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
			self.engine = create_engine(db_url, echo=False, future=True)
		self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

	def init_db(self) -> None:
		Base.metadata.create_all(bind=self.engine)

	def append(self, assessment: RiskAssessment) -> int:
		session = self.SessionLocal()
		try:
			rec = RiskAssessmentRecord(
				student_id=assessment.student_id,
				calculated_at=assessment.calculated_at,
				academic_year=assessment.academic_year,
				total_risk_score=assessment.total_risk_score,
				risk_level=assessment.risk_level,
				payload=assessment.model_dump(mode="json"),
			)
			session.add(rec)
			session.commit()
			return int(rec.id)
		finally:
			session.close()

	def latest(self, student_id: str) -> Optional[RiskAssessment]:
		session = self.SessionLocal()
		try:
			row = (
				session.query(RiskAssessmentRecord)
				.filter(RiskAssessmentRecord.student_id == student_id)
				.order_by(RiskAssessmentRecord.calculated_at.desc(), RiskAssessmentRecord.id.desc())
				.first()
			)
			return row.to_assessment() if row else None
		finally:
			session.close()

	def history(self, student_id: str, months: Optional[int] = None) -> List[RiskAssessment]:
		"""Assessments for one student, oldest first, optionally limited to recent months."""
		session = self.SessionLocal()
		try:
			query = session.query(RiskAssessmentRecord).filter(RiskAssessmentRecord.student_id == student_id)
			if months is not None:
				query = query.filter(RiskAssessmentRecord.calculated_at >= utcnow() - timedelta(days=30 * months))
			rows = query.order_by(RiskAssessmentRecord.calculated_at.asc(), RiskAssessmentRecord.id.asc()).all()
			return [r.to_assessment() for r in rows]
		finally:
			session.close()

	def _latest_per_student(self, session) -> List[RiskAssessmentRecord]:
		rows = session.execute(
			select(RiskAssessmentRecord).order_by(
				RiskAssessmentRecord.student_id, RiskAssessmentRecord.calculated_at.desc(), RiskAssessmentRecord.id.desc()
			)
		).scalars()
		latest: Dict[str, RiskAssessmentRecord] = {}
		for row in rows:
			latest.setdefault(row.student_id, row)
		return list(latest.values())

	def high_risk_students(self, limit: int = 50) -> List[RiskAssessment]:
		"""Latest assessment of each student currently at High or Critical, riskiest first."""
		session = self.SessionLocal()
		try:
			rows = [r for r in self._latest_per_student(session) if r.risk_level in ("High", "Critical")]
			rows.sort(key=lambda r: r.total_risk_score, reverse=True)
			return [r.to_assessment() for r in rows[:limit]]
		finally:
			session.close()

	def risk_distribution(self) -> Dict[str, Dict[str, float]]:
		session = self.SessionLocal()
		try:
			buckets: Dict[str, List[float]] = defaultdict(list)
			for row in self._latest_per_student(session):
				buckets[row.risk_level].append(row.total_risk_score)
			return {
				level: {"count": len(scores), "averageScore": sum(scores) / len(scores)}
				for level, scores in sorted(buckets.items())
			}
		finally:
			session.close()

	def rapid_increases(
		self,
		window_days: int = RAPID_WINDOW_DAYS,
		min_increase: float = RAPID_INCREASE_POINTS,
		max_span_days: float = RAPID_INCREASE_DAYS,
		now: Optional[datetime] = None,
	) -> List[Dict[str, Any]]:
		"""Students whose two latest assessments in the window rose sharply within a short span."""
		now = now or utcnow()
		session = self.SessionLocal()
		try:
			rows = (
				session.query(RiskAssessmentRecord)
				.filter(RiskAssessmentRecord.calculated_at >= now - timedelta(days=window_days))
				.order_by(
					RiskAssessmentRecord.student_id,
					RiskAssessmentRecord.calculated_at.desc(),
					RiskAssessmentRecord.id.desc(),
				)
				.all()
			)
		finally:
			session.close()

		by_student: Dict[str, List[RiskAssessmentRecord]] = defaultdict(list)
		for row in rows:
			by_student[row.student_id].append(row)

		flagged: List[Dict[str, Any]] = []
		for student_id, history in by_student.items():
			if len(history) < 2:
				continue
			latest, previous = history[0], history[1]
			increase = latest.total_risk_score - previous.total_risk_score
			span_days = (latest.calculated_at - previous.calculated_at).total_seconds() / 86400
			if increase > min_increase and span_days <= max_span_days:
				flagged.append({
					"student_id": student_id,
					"risk_increase": increase,
					"time_span_days": span_days,
					"current_risk": latest.total_risk_score,
					"previous_risk": previous.total_risk_score,
				})
		return flagged
