from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Union

import numpy as np
import pandas as pd

from .config import EDUCATION_LEVELS, FEATURE_MAX_VALUES, FEATURE_NAMES, INCOME_LEVELS
from .schemas import StudentProfile, coerce_profile

logger = logging.getLogger("features")

FEATURE_COUNT = len(FEATURE_NAMES)
# Largest Euclidean distance between two vectors in the unit hypercube
MAX_FEATURE_DISTANCE = float(np.sqrt(FEATURE_COUNT))


def _parent_education(profile: StudentProfile) -> float:
	father = EDUCATION_LEVELS.get(profile.father_education or "None", 0)
	mother = EDUCATION_LEVELS.get(profile.mother_education or "None", 0)
	return (father + mother) / 2


def raw_features(profile: StudentProfile) -> List[float]:
	return [
		profile.attendance_percentage or 0.0,
		profile.overall_percentage or 0.0,
		profile.failed_subjects_count,
		profile.consecutive_absences,
		profile.late_coming_count,
		profile.distance_from_school or 0.0,
		INCOME_LEVELS.get(profile.family_income_level or "", 0),
		1.0 if profile.has_health_issues else 0.0,
		1.0 if profile.has_behavioral_issues else 0.0,
		1.0 if profile.has_family_problems else 0.0,
		1.0 if profile.has_economic_distress else 0.0,
		profile.previous_dropout_attempts,
		profile.siblings_count,
		_parent_education(profile),
	]


def extract(profile: Union[StudentProfile, Mapping[str, Any]]) -> np.ndarray:
	"""Normalize a profile into the fixed-order feature vector, every entry in [0, 1].

	Missing inputs become 0. Values above the documented maximum are capped at 1.
	"""
	profile = coerce_profile(profile)
	raw = np.asarray(raw_features(profile), dtype=float)
	maxima = np.asarray(FEATURE_MAX_VALUES, dtype=float)
	return np.clip(raw / maxima, 0.0, 1.0)


def feature_confidence(vector: np.ndarray) -> float:
	"""Share of non-zero features as a 0-100 data completeness proxy."""
	vector = np.asarray(vector, dtype=float)
	if vector.size == 0:
		return 0.0
	return round(float(np.count_nonzero(vector)) / vector.size * 100.0, 2)


def features_frame(profiles: Iterable[Union[StudentProfile, Mapping[str, Any]]]) -> pd.DataFrame:
	rows = [extract(p) for p in profiles]
	if not rows:
		return pd.DataFrame(columns=FEATURE_NAMES, dtype=float)
	return pd.DataFrame(np.vstack(rows), columns=FEATURE_NAMES)


def ensure_feature_matrix(features: Any) -> np.ndarray:
	"""Coerce training or inference input into a 2-D float matrix of FEATURE_COUNT columns."""
	if isinstance(features, pd.DataFrame):
		features = features.reindex(columns=FEATURE_NAMES, fill_value=0.0).fillna(0.0).values
	matrix = np.asarray(features, dtype=float)
	if matrix.ndim == 1:
		matrix = matrix.reshape(1, -1)
	if matrix.shape[1] != FEATURE_COUNT:
		raise ValueError(f"expected {FEATURE_COUNT} features, got {matrix.shape[1]}")
	return matrix
