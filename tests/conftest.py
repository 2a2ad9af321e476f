"""Shared fixtures: sample students, a scratch model directory and an in-memory history store."""

from datetime import datetime

import pytest

from risk_engine.data_pipeline import RiskHistoryStore
from risk_engine.generate_dataset import generate_rows
from risk_engine.model import PredictiveModel, examples_from_outcomes


@pytest.fixture
def low_risk_profile():
	return {
		"student_id": "S-LOW",
		"attendance_percentage": 95.0,
		"overall_percentage": 88.0,
		"failed_subjects_count": 0,
		"consecutive_absences": 0,
		"late_coming_count": 0,
		"distance_from_school": 1.5,
		"transportation_mode": "School Bus",
		"family_income_level": "High Income",
		"father_education": "Graduate",
		"mother_education": "Graduate",
		"siblings_count": 1,
		"academic_trend": "Stable",
	}


@pytest.fixture
def critical_profile():
	return {
		"student_id": "S-CRIT",
		"attendance_percentage": 50.0,
		"overall_percentage": 35.0,
		"failed_subjects_count": 4,
		"consecutive_absences": 6,
		"late_coming_count": 25,
		"distance_from_school": 12.0,
		"transportation_mode": "Walk",
		"family_income_level": "Below Poverty Line",
		"father_education": "None",
		"mother_education": "Primary",
		"has_behavioral_issues": True,
		"has_family_problems": True,
		"has_economic_distress": True,
		"previous_dropout_attempts": 1,
		"siblings_count": 5,
		"academic_trend": "Declining",
		"grade_change": -15.0,
	}


@pytest.fixture
def fixed_now():
	return datetime(2026, 10, 17, 9, 30)


@pytest.fixture
def synthetic_students():
	return generate_rows(150, seed=7)


@pytest.fixture
def training_examples(synthetic_students):
	records = synthetic_students.to_dict(orient="records")
	return examples_from_outcomes((rec, rec["is_active"]) for rec in records)


@pytest.fixture
def models_dir(tmp_path):
	return tmp_path / "models"


@pytest.fixture
def predictive_model(models_dir):
	return PredictiveModel(models_dir, model_type="random_forest", iterations=20, max_workers=2)


@pytest.fixture
def history_store():
	store = RiskHistoryStore("sqlite://")
	store.init_db()
	return store
