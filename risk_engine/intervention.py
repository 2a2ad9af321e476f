from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Union

import numpy as np
from pydantic import ValidationError

from .config import (
	COMPLETED_STATUS,
	CONFIDENCE_PER_CASE,
	MAX_INTERVENTION_CONFIDENCE,
	NEUTRAL_EFFECTIVENESS,
	NO_HISTORY_CONFIDENCE,
	NO_MATCH_CONFIDENCE,
	OUTCOME_SCORES,
	SIMILARITY_THRESHOLD,
)
from .errors import InvalidProfileError
from .features import MAX_FEATURE_DISTANCE, extract
from .schemas import HistoricalIntervention, InterventionEffectivenessEstimate, StudentProfile

logger = logging.getLogger("intervention")


def similarity(a: np.ndarray, b: np.ndarray) -> float:
	"""1 - euclidean distance / largest possible distance, in [0, 1]."""
	distance = float(np.linalg.norm(np.asarray(a, dtype=float) - np.asarray(b, dtype=float)))
	return float(np.clip(1.0 - distance / MAX_FEATURE_DISTANCE, 0.0, 1.0))


def effectiveness_recommendation(effectiveness: float) -> str:
	if effectiveness >= 80:
		return "Highly recommended - High success probability"
	if effectiveness >= 60:
		return "Recommended - Good success probability"
	if effectiveness >= 40:
		return "Consider with caution - Moderate success probability"
	return "Not recommended - Low success probability"


def _completed_cases(intervention_type: str, history: Iterable[Union[HistoricalIntervention, Mapping[str, Any]]]):
	for item in history:
		if isinstance(item, HistoricalIntervention):
			case = item
		else:
			try:
				case = HistoricalIntervention.model_validate(item)
			except ValidationError as exc:
				logger.warning(f"Ignoring malformed intervention record: {exc.error_count()} validation error(s)")
				continue
		if case.intervention_type != intervention_type:
			continue
		if case.status != COMPLETED_STATUS or case.outcome not in OUTCOME_SCORES:
			continue
		yield case


def estimate_effectiveness(
	profile: Union[StudentProfile, Mapping[str, Any]],
	intervention_type: str,
	history: Iterable[Union[HistoricalIntervention, Mapping[str, Any]]],
) -> InterventionEffectivenessEstimate:
	"""Similarity-weighted outcome of past interventions of the same type.

	Cases below the similarity threshold are ignored. With no usable history
	the estimate is neutral (50) with low confidence rather than an error.
	"""
	target = extract(profile)
	cases = list(_completed_cases(intervention_type, history))
	if not cases:
		return InterventionEffectivenessEstimate(
			effectiveness=NEUTRAL_EFFECTIVENESS,
			confidence=NO_HISTORY_CONFIDENCE,
			similar_case_count=0,
			recommendation="Insufficient data - limited historical data available",
		)

	weighted_sum = 0.0
	weight_total = 0.0
	matches = 0
	for case in cases:
		try:
			candidate = extract(case.student_profile)
		except InvalidProfileError as exc:
			logger.warning(f"Ignoring intervention {case.intervention_id}: {exc}")
			continue
		sim = similarity(target, candidate)
		if sim > SIMILARITY_THRESHOLD:
			weighted_sum += OUTCOME_SCORES[case.outcome] * sim
			weight_total += sim
			matches += 1

	if matches == 0:
		return InterventionEffectivenessEstimate(
			effectiveness=NEUTRAL_EFFECTIVENESS,
			confidence=NO_MATCH_CONFIDENCE,
			similar_case_count=0,
			recommendation="Insufficient data - no similar cases found",
		)

	effectiveness = round(float(np.clip(weighted_sum / weight_total, 0.0, 100.0)), 2)
	confidence = min(matches * CONFIDENCE_PER_CASE, MAX_INTERVENTION_CONFIDENCE)
	logger.debug(f"{intervention_type}: {matches} similar cases, effectiveness {effectiveness}")
	return InterventionEffectivenessEstimate(
		effectiveness=effectiveness,
		confidence=confidence,
		similar_case_count=matches,
		recommendation=effectiveness_recommendation(effectiveness),
	)
