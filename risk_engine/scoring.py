"""Deterministic weighted-factor risk scoring.

Every category maps raw profile attributes to a 0-100 sub-score through the
rule table in ``config.RULES``. The total is the weighted sum of the seven
sub-scores, so an assessment is fully explained by its breakdown.
"""
from __future__ import annotations

import logging
import warnings
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .config import (
	ACTIONABLE_CUTOFF,
	CATEGORY_LABELS,
	CRITICAL_PRIORITY_SCORE,
	DEFAULT_TIMELINE,
	DROPOUT_TIMELINES,
	RECOMMENDATION_TEMPLATES,
	RISK_LEVEL_THRESHOLDS,
	RISK_LEVELS,
	RISK_WEIGHTS,
	RULES,
	TOP_FACTOR_COUNT,
	TOP_RISK_LEVEL,
)
from .errors import DataIncompleteWarning
from .schemas import KeyFactor, Recommendation, RiskAssessment, StudentProfile, SubScore, coerce_profile
from .utils import clamp, current_academic_year, utcnow

logger = logging.getLogger("scoring")

ProfileInput = Union[StudentProfile, Mapping[str, Any]]


def risk_level(score: float) -> str:
	for bound, level in RISK_LEVEL_THRESHOLDS:
		if score < bound:
			return level
	return TOP_RISK_LEVEL


def risk_level_increased(old_level: Optional[str], new_level: str) -> bool:
	"""True when the level moved up, the condition for a risk alert."""
	if old_level not in RISK_LEVELS:
		return False
	return RISK_LEVELS.index(new_level) > RISK_LEVELS.index(old_level)


def dropout_timeline(probability: float) -> Tuple[str, str]:
	for bound, timeline, urgency in DROPOUT_TIMELINES:
		if probability >= bound:
			return timeline, urgency
	return DEFAULT_TIMELINE


def _percentage_tier(value: Optional[float], rules: Dict[str, Any]) -> Tuple[float, str]:
	if value is None:
		return 0.0, "Unknown"
	for bound, points, level in rules["percentage_tiers"]:
		if value >= bound:
			return points, level
	points, level = rules["percentage_floor"]
	return points, level


def _at_least(value: float, tiers: Sequence[Tuple[float, float]]) -> float:
	for bound, points in tiers:
		if value >= bound:
			return points
	return 0.0


def _more_than(value: float, tiers: Sequence[Tuple[float, float]]) -> float:
	for bound, points in tiers:
		if value > bound:
			return points
	return 0.0


def attendance_risk(profile: StudentProfile) -> SubScore:
	rules = RULES["attendance"]
	points, level = _percentage_tier(profile.attendance_percentage, rules)
	details: Dict[str, Any] = {
		"attendancePercentage": profile.attendance_percentage,
		"level": level,
		"lateComingCount": profile.late_coming_count,
	}
	absence_points = _at_least(profile.consecutive_absences, rules["consecutive_absence_tiers"])
	if absence_points:
		details["consecutiveAbsences"] = profile.consecutive_absences
	return SubScore(score=clamp(points + absence_points), weight=RISK_WEIGHTS["attendance"], details=details)


def academic_risk(profile: StudentProfile) -> SubScore:
	rules = RULES["academic"]
	points, level = _percentage_tier(profile.overall_percentage, rules)
	points += _at_least(profile.failed_subjects_count, rules["failed_subject_tiers"])
	points += rules["trend_points"].get(profile.academic_trend, 0)
	details = {
		"overallPercentage": profile.overall_percentage,
		"failedSubjects": profile.failed_subjects_count,
		"trend": profile.academic_trend,
		"level": level,
	}
	return SubScore(score=clamp(points), weight=RISK_WEIGHTS["academic"], details=details)


def financial_risk(profile: StudentProfile) -> SubScore:
	rules = RULES["financial"]
	points = float(rules["income_points"].get(profile.family_income_level or "", 0))
	details: Dict[str, Any] = {"incomeLevel": profile.family_income_level}
	if profile.has_economic_distress:
		points += rules["economic_distress"]
		details["hasEconomicDistress"] = True
	if "None" in (profile.father_education, profile.mother_education):
		points += rules["uneducated_parent"]
		details["parentEducationLevel"] = "None"
	return SubScore(score=clamp(points), weight=RISK_WEIGHTS["financial"], details=details)


def behavioral_risk(profile: StudentProfile) -> SubScore:
	rules = RULES["behavioral"]
	points = 0.0
	details: Dict[str, Any] = {"lateComingFrequency": profile.late_coming_count}
	if profile.has_behavioral_issues:
		points += rules["behavioral_issues"]
		details["hasBehavioralIssues"] = True
		details["behavioralDetails"] = profile.behavioral_details
	points += _more_than(profile.late_coming_count, rules["late_coming_tiers"])
	if profile.previous_dropout_attempts > 0:
		points += rules["previous_dropout_attempt"]
		details["previousDropoutAttempts"] = profile.previous_dropout_attempts
	if profile.grade_change is not None and profile.grade_change < rules["decline_swing"]:
		points += rules["decline_points"]
		details["gradeChange"] = profile.grade_change
	return SubScore(score=clamp(points), weight=RISK_WEIGHTS["behavioral"], details=details)


def health_risk(profile: StudentProfile) -> SubScore:
	points = 0.0
	details: Dict[str, Any] = {}
	if profile.has_health_issues:
		points += RULES["health"]["health_issues"]
		details["hasHealthIssues"] = True
		details["healthDetails"] = profile.health_details
	return SubScore(score=clamp(points), weight=RISK_WEIGHTS["health"], details=details)


def distance_risk(profile: StudentProfile) -> SubScore:
	rules = RULES["distance"]
	distance = profile.distance_from_school or 0.0
	points = _more_than(distance, rules["distance_tiers"])
	walking = profile.transportation_mode == "Walk" and distance > rules["walking_limit_km"]
	if walking:
		points += rules["walking_points"]
	details = {
		"distance": profile.distance_from_school,
		"transportMode": profile.transportation_mode,
		"transportationChallenges": walking,
	}
	return SubScore(score=clamp(points), weight=RISK_WEIGHTS["distance"], details=details)


def family_risk(profile: StudentProfile) -> SubScore:
	rules = RULES["family"]
	points = 0.0
	details: Dict[str, Any] = {"siblingsCount": profile.siblings_count}
	if profile.has_family_problems:
		points += rules["family_problems"]
		details["hasFamilyProblems"] = True
	points += _more_than(profile.siblings_count, rules["sibling_tiers"])
	return SubScore(score=clamp(points), weight=RISK_WEIGHTS["family"], details=details)


CATEGORY_SCORERS = {
	"attendance": attendance_risk,
	"academic": academic_risk,
	"financial": financial_risk,
	"behavioral": behavioral_risk,
	"health": health_risk,
	"distance": distance_risk,
	"family": family_risk,
}


def compute_sub_scores(profile: StudentProfile) -> Dict[str, SubScore]:
	return {category: scorer(profile) for category, scorer in CATEGORY_SCORERS.items()}


def weighted_total(sub_scores: Mapping[str, SubScore]) -> float:
	return clamp(sum(s.score * s.weight for s in sub_scores.values()))


def contributions(sub_scores: Union[RiskAssessment, Mapping[str, SubScore]]) -> List[Tuple[str, SubScore]]:
	"""Categories ordered by score x weight, largest first; ties keep category order."""
	if isinstance(sub_scores, RiskAssessment):
		sub_scores = sub_scores.sub_scores()
	return sorted(sub_scores.items(), key=lambda item: item[1].contribution, reverse=True)


def _priority(score: float) -> str:
	if score >= CRITICAL_PRIORITY_SCORE:
		return "Critical"
	if score >= 65:
		return "High"
	return "Medium"


def generate_recommendations(
	sub_scores: Mapping[str, SubScore], cutoff: float = ACTIONABLE_CUTOFF
) -> List[Recommendation]:
	recommendations: List[Recommendation] = []
	for category, sub in contributions(sub_scores):
		if sub.score <= cutoff:
			continue
		for action, description, impact, difficulty in RECOMMENDATION_TEMPLATES[category]:
			recommendations.append(
				Recommendation(
					priority=_priority(sub.score),
					category=CATEGORY_LABELS[category],
					action=action,
					description=description,
					estimated_impact=impact,
					implementation_difficulty=difficulty,
				)
			)
	return recommendations


def _severity(score: float) -> str:
	if score >= 70:
		return "High"
	if score >= 40:
		return "Medium"
	return "Low"


def key_factors(sub_scores: Mapping[str, SubScore], limit: int = TOP_FACTOR_COUNT) -> List[KeyFactor]:
	"""Top risk drivers by weighted contribution, independent of any model."""
	factors: List[KeyFactor] = []
	for category, sub in contributions(sub_scores):
		if sub.contribution <= 0:
			break
		factors.append(
			KeyFactor(
				factor=f"{CATEGORY_LABELS[category]} Risk",
				category=CATEGORY_LABELS[category],
				score=sub.score,
				weight=sub.weight,
				contribution=round(sub.contribution, 4),
				severity=_severity(sub.score),
			)
		)
		if len(factors) == limit:
			break
	return factors


def score(profile: ProfileInput, now: Optional[datetime] = None) -> RiskAssessment:
	"""Rule-based assessment of one student, without the dropout prediction.

	Raises InvalidProfileError for malformed input. Missing optional inputs
	only lower ``data_completeness`` and emit a DataIncompleteWarning.
	"""
	profile = coerce_profile(profile)
	now = now or utcnow()
	missing = profile.missing_fields()
	if missing:
		warnings.warn(
			f"student {profile.student_id or '?'} is missing {', '.join(missing)}",
			DataIncompleteWarning,
			stacklevel=2,
		)
	sub_scores = compute_sub_scores(profile)
	total = weighted_total(sub_scores)
	assessment = RiskAssessment(
		student_id=profile.student_id,
		calculated_at=now,
		academic_year=current_academic_year(now),
		attendance_risk=sub_scores["attendance"],
		academic_risk=sub_scores["academic"],
		financial_risk=sub_scores["financial"],
		behavioral_risk=sub_scores["behavioral"],
		health_risk=sub_scores["health"],
		distance_risk=sub_scores["distance"],
		family_risk=sub_scores["family"],
		total_risk_score=total,
		risk_level=risk_level(total),
		recommendations=generate_recommendations(sub_scores),
		data_completeness=profile.data_completeness(),
		missing_fields=missing,
	)
	logger.debug(f"Rule-based risk for {profile.student_id}: {total:.2f} ({assessment.risk_level})")
	return assessment


def rule_based_probability(profile: ProfileInput) -> float:
	"""Fallback dropout probability (0-100) using the same weighting as the scorer."""
	profile = coerce_profile(profile)
	return weighted_total(compute_sub_scores(profile))
