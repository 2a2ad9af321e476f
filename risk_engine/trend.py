from __future__ import annotations

from typing import Optional

from .config import TREND_TOLERANCE
from .schemas import RiskAssessment


def risk_trend(previous_score: float, current_score: float, tolerance: float = TREND_TOLERANCE) -> str:
	delta = current_score - previous_score
	if delta > tolerance:
		return "Worsening"
	if delta < -tolerance:
		return "Improving"
	return "Stable"


def change_from_previous(previous_score: float, current_score: float) -> Optional[float]:
	"""Percentage drop relative to the previous score; positive means lower risk now."""
	if previous_score == 0:
		return None
	return round((previous_score - current_score) / previous_score * 100.0, 2)


def attach_trend(current: RiskAssessment, previous: Optional[RiskAssessment]) -> RiskAssessment:
	"""Copy of ``current`` carrying trend fields derived from ``previous``; neither input is modified."""
	if previous is None:
		return current
	return current.model_copy(
		update={
			"previous_risk_score": previous.total_risk_score,
			"risk_trend": risk_trend(previous.total_risk_score, current.total_risk_score),
			"change_from_previous": change_from_previous(previous.total_risk_score, current.total_risk_score),
		}
	)
