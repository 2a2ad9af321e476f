"""Tests for the RiskEngine entry points and the scheduled sweep."""

import pytest

from risk_engine.data import InMemoryStudentRepository
from risk_engine.engine import RiskEngine
from risk_engine.errors import InvalidProfileError, StudentNotFoundError
from risk_engine.model import ModelState
from risk_engine.scheduler import RiskSweepScheduler


@pytest.fixture
def repo(critical_profile, low_risk_profile):
	return InMemoryStudentRepository(
		[critical_profile, low_risk_profile],
		[
			{"intervention_id": "I1", "intervention_type": "Counseling", "outcome": "Successful", "student_profile": critical_profile},
			{"intervention_id": "I2", "intervention_type": "Counseling", "outcome": "Partially Successful", "student_profile": critical_profile},
		],
	)


@pytest.fixture
def engine(repo, predictive_model):
	return RiskEngine(repo, predictive_model, interventions=repo, outcomes=repo, max_workers=2)


def test_assess_merges_rule_score_and_prediction(engine):
	assessment = engine.assess("S-CRIT")
	assert assessment.risk_level == "Critical"
	assert assessment.dropout_prediction is not None
	assert assessment.dropout_prediction.method == "rule-based"
	assert assessment.dropout_prediction.probability == pytest.approx(assessment.total_risk_score, abs=0.01)
	assert assessment.calculated_by == "System"
	assert assessment.model_version is None
	assert assessment.risk_trend is None


def test_assess_unknown_and_invalid_students(engine, repo, low_risk_profile):
	with pytest.raises(StudentNotFoundError):
		engine.assess("S-NOPE")
	repo._profiles["S-BAD"] = dict(low_risk_profile, student_id="S-BAD", distance_from_school=-4.0)
	with pytest.raises(InvalidProfileError):
		engine.assess("S-BAD")


def test_assess_batch_omits_invalid_profile(critical_profile, low_risk_profile, predictive_model):
	bad = dict(low_risk_profile, student_id="S-BAD", distance_from_school=-4.0)
	repo = InMemoryStudentRepository([critical_profile, bad, low_risk_profile])
	engine = RiskEngine(repo, predictive_model, max_workers=3)
	results = engine.assess_batch(["S-CRIT", "S-BAD", "S-LOW", "S-NOPE"])
	assert [a.student_id for a in results] == ["S-CRIT", "S-LOW"]
	assert engine.assess_batch([]) == []


def test_assess_attaches_trend_from_lookup(repo, predictive_model, history_store):
	engine = RiskEngine(repo, predictive_model, previous_assessment=history_store.latest)
	first = engine.assess("S-CRIT")
	history_store.append(first.model_copy(update={"total_risk_score": first.total_risk_score + 15}))
	second = engine.assess("S-CRIT")
	assert second.risk_trend == "Improving"
	assert second.change_from_previous > 0


def test_estimate_intervention(engine):
	estimate = engine.estimate_intervention("S-CRIT", "Counseling")
	assert estimate.similar_case_count == 2
	assert estimate.effectiveness == pytest.approx(75)

	neutral = engine.estimate_intervention("S-CRIT", "Financial Aid")
	assert neutral.effectiveness == 50
	assert neutral.confidence <= 30


def test_train_and_evaluate_model(synthetic_students, predictive_model, critical_profile):
	repo = InMemoryStudentRepository(synthetic_students.to_dict(orient="records") + [critical_profile])
	engine = RiskEngine(repo, predictive_model, outcomes=repo)

	metrics = engine.train_model()
	assert metrics.version == 1
	assert predictive_model.state == ModelState.READY

	assessment = engine.assess("S-CRIT")
	assert assessment.dropout_prediction.method == "model"
	assert assessment.calculated_by == "ML Model"
	assert assessment.model_version == "v1"

	result = engine.evaluate_model()
	assert result.method == "model"
	assert result.sample_count == len(synthetic_students)


def test_scheduled_sweep(repo, predictive_model, history_store, critical_profile):
	engine = RiskEngine(repo, predictive_model)
	sweep = RiskSweepScheduler(engine, history_store)

	summary = sweep.recalculate_all()
	assert summary["total_students"] == 2
	assert summary["successful"] == 2
	assert summary["failed"] == 0
	assert summary["risk_level_changes"] == 0

	# S-LOW gets worse between sweeps
	repo._profiles["S-LOW"] = dict(critical_profile, student_id="S-LOW")
	summary = sweep.recalculate_all()
	assert summary["risk_level_changes"] == 1
	assert summary["risk_level_increases"] == 1

	latest = history_store.latest("S-LOW")
	assert latest.risk_level == "Critical"
	assert latest.risk_trend == "Worsening"
	assert latest.change_from_previous is None
	assert len(history_store.history("S-CRIT")) == 2


def test_scheduler_registers_jobs(repo, predictive_model, history_store):
	sweep = RiskSweepScheduler(RiskEngine(repo, predictive_model), history_store)
	sweep.start()
	try:
		job_ids = {job.id for job in sweep.scheduler.get_jobs()}
		assert job_ids == {"risk_sweep_job", "rapid_increase_job"}
	finally:
		sweep.shutdown()
	assert sweep.check_rapid_increases() == []


def test_assess_batch_survives_lookup_failure(repo, predictive_model):
	def flaky_lookup(student_id):
		if student_id == "S-CRIT":
			raise RuntimeError("history backend unavailable")
		return None

	engine = RiskEngine(repo, predictive_model, previous_assessment=flaky_lookup, max_workers=2)
	results = engine.assess_batch(["S-CRIT", "S-LOW"])
	assert [a.student_id for a in results] == ["S-LOW"]


def test_scheduled_sweep_counts_store_failures(repo, predictive_model, history_store, monkeypatch):
	real_latest = history_store.latest

	def flaky_latest(student_id):
		if student_id == "S-CRIT":
			raise RuntimeError("database is locked")
		return real_latest(student_id)

	monkeypatch.setattr(history_store, "latest", flaky_latest)
	summary = RiskSweepScheduler(RiskEngine(repo, predictive_model), history_store).recalculate_all()
	assert summary["total_students"] == 2
	assert summary["successful"] == 1
	assert summary["failed"] == 1
	assert real_latest("S-LOW") is not None
	assert real_latest("S-CRIT") is None
