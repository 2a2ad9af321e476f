"""Unit tests for similarity-based intervention effectiveness."""

import numpy as np
import pytest

from risk_engine.features import extract
from risk_engine.intervention import effectiveness_recommendation, estimate_effectiveness, similarity


def _case(profile, outcome="Successful", intervention_type="Counseling", status="Completed", case_id="I1"):
	return {
		"intervention_id": case_id,
		"intervention_type": intervention_type,
		"status": status,
		"outcome": outcome,
		"student_profile": profile,
	}


def test_similarity_bounds(critical_profile, low_risk_profile):
	a = extract(critical_profile)
	b = extract(low_risk_profile)
	assert similarity(a, a) == pytest.approx(1.0)
	assert 0.0 <= similarity(a, b) < 0.6
	assert similarity(np.zeros(14), np.ones(14)) == pytest.approx(0.0)


def test_no_history_returns_neutral_estimate(critical_profile):
	estimate = estimate_effectiveness(critical_profile, "Counseling", [])
	assert estimate.effectiveness == 50
	assert estimate.confidence <= 30
	assert estimate.similar_case_count == 0
	assert "Insufficient data" in estimate.recommendation


def test_other_types_and_open_cases_are_ignored(critical_profile):
	history = [
		_case(critical_profile, intervention_type="Financial Aid"),
		_case(critical_profile, status="In Progress", case_id="I2"),
		_case(critical_profile, outcome=None, case_id="I3"),
	]
	estimate = estimate_effectiveness(critical_profile, "Counseling", history)
	assert estimate.effectiveness == 50
	assert estimate.similar_case_count == 0


def test_no_similar_cases(critical_profile, low_risk_profile):
	estimate = estimate_effectiveness(low_risk_profile, "Counseling", [_case(critical_profile)])
	assert estimate.effectiveness == 50
	assert estimate.confidence <= 30
	assert estimate.recommendation == "Insufficient data - no similar cases found"


def test_identical_cases_average_outcomes(critical_profile):
	history = [
		_case(critical_profile, outcome="Successful", case_id="I1"),
		_case(critical_profile, outcome="Not Successful", case_id="I2"),
	]
	estimate = estimate_effectiveness(critical_profile, "Counseling", history)
	assert estimate.effectiveness == pytest.approx((90 + 20) / 2)
	assert estimate.similar_case_count == 2
	assert estimate.confidence == 20
	assert estimate.recommendation == effectiveness_recommendation(55.0)


def test_closer_cases_weigh_more(critical_profile):
	near = dict(critical_profile, late_coming_count=24)
	farther = dict(critical_profile, overall_percentage=60.0, failed_subjects_count=0, consecutive_absences=0)
	history = [_case(near, "Successful", case_id="I1"), _case(farther, "Not Successful", case_id="I2")]
	estimate = estimate_effectiveness(critical_profile, "Counseling", history)
	assert estimate.similar_case_count == 2
	assert 55 < estimate.effectiveness < 90


def test_confidence_is_capped(critical_profile):
	history = [_case(critical_profile, case_id=f"I{i}") for i in range(15)]
	estimate = estimate_effectiveness(critical_profile, "Counseling", history)
	assert estimate.effectiveness == pytest.approx(90)
	assert estimate.confidence == 90
	assert estimate.recommendation.startswith("Highly recommended")


def test_invalid_case_profiles_are_skipped(critical_profile):
	history = [
		_case(dict(critical_profile, distance_from_school=-1), case_id="I1"),
		_case(critical_profile, outcome="Partially Successful", case_id="I2"),
	]
	estimate = estimate_effectiveness(critical_profile, "Counseling", history)
	assert estimate.similar_case_count == 1
	assert estimate.effectiveness == pytest.approx(60)


def test_malformed_history_records_are_skipped(critical_profile):
	history = [
		{"outcome": "Successful", "status": "Completed", "student_profile": critical_profile},
		_case(critical_profile, outcome="Not Successful", case_id="I2"),
	]
	estimate = estimate_effectiveness(critical_profile, "Counseling", history)
	assert estimate.similar_case_count == 1
	assert estimate.effectiveness == pytest.approx(20)

	only_bad = estimate_effectiveness(critical_profile, "Counseling", history[:1])
	assert only_bad.effectiveness == 50
	assert only_bad.confidence <= 30
