"""Unit tests for feature extraction."""

import numpy as np
import pandas as pd
import pytest

from risk_engine.config import FEATURE_NAMES
from risk_engine.errors import InvalidProfileError
from risk_engine.features import (
	FEATURE_COUNT,
	ensure_feature_matrix,
	extract,
	feature_confidence,
	features_frame,
)


def test_extract_shape_and_bounds(critical_profile, low_risk_profile):
	for profile in (critical_profile, low_risk_profile):
		vec = extract(profile)
		assert vec.shape == (FEATURE_COUNT,)
		assert np.all(vec >= 0.0)
		assert np.all(vec <= 1.0)


def test_extract_normalizes_by_documented_maximums(low_risk_profile):
	vec = dict(zip(FEATURE_NAMES, extract(low_risk_profile)))
	assert vec["attendance_percentage"] == pytest.approx(0.95)
	assert vec["overall_percentage"] == pytest.approx(0.88)
	assert vec["distance_from_school"] == pytest.approx(1.5 / 50)
	assert vec["family_income_level"] == pytest.approx(1.0)
	assert vec["siblings_count"] == pytest.approx(0.1)
	# Graduate on both sides: (4 + 4) / 2 / 6
	assert vec["parent_education_level"] == pytest.approx(4 / 6)


def test_missing_inputs_become_zero():
	vec = extract({"student_id": "S-EMPTY"})
	assert vec.shape == (FEATURE_COUNT,)
	assert np.count_nonzero(vec) == 0
	assert feature_confidence(vec) == 0.0


def test_values_above_maximum_are_capped():
	vec = dict(zip(FEATURE_NAMES, extract({"late_coming_count": 80, "distance_from_school": 120.0, "siblings_count": 14})))
	assert vec["late_coming_count"] == 1.0
	assert vec["distance_from_school"] == 1.0
	assert vec["siblings_count"] == 1.0


def test_extract_rejects_malformed_input():
	with pytest.raises(InvalidProfileError):
		extract({"distance_from_school": -3})
	with pytest.raises(InvalidProfileError):
		extract({"attendance_percentage": 140})
	with pytest.raises(InvalidProfileError):
		extract({"family_income_level": "Unknown Income"})


def test_feature_confidence_is_non_zero_share():
	vec = np.zeros(FEATURE_COUNT)
	vec[:7] = 0.5
	assert feature_confidence(vec) == pytest.approx(50.0)


def test_features_frame_and_matrix(critical_profile, low_risk_profile):
	frame = features_frame([critical_profile, low_risk_profile])
	assert list(frame.columns) == FEATURE_NAMES
	assert len(frame) == 2

	shuffled = frame[list(reversed(FEATURE_NAMES))]
	matrix = ensure_feature_matrix(shuffled)
	assert np.allclose(matrix, frame.values)

	assert ensure_feature_matrix(frame.values[0]).shape == (1, FEATURE_COUNT)
	with pytest.raises(ValueError):
		ensure_feature_matrix(np.zeros((2, 3)))
	assert features_frame([]).empty
	assert isinstance(features_frame([]), pd.DataFrame)


def test_non_finite_numbers_are_rejected(low_risk_profile):
	for field in ("distance_from_school", "attendance_percentage", "grade_change"):
		with pytest.raises(InvalidProfileError):
			extract(dict(low_risk_profile, **{field: float("inf")}))
	with pytest.raises(InvalidProfileError):
		extract(dict(low_risk_profile, distance_from_school=float("-inf")))
