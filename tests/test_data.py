"""Unit tests for the CSV-backed accessors and the synthetic dataset generator."""

import pandas as pd
import pytest

from risk_engine.data import CsvStudentRepository, InMemoryStudentRepository
from risk_engine.errors import StudentNotFoundError
from risk_engine.generate_dataset import generate_interventions, generate_rows
from risk_engine.schemas import coerce_profile
from risk_engine.train_model import load_training_examples


@pytest.fixture
def csv_repo(tmp_path, critical_profile, low_risk_profile):
	students = pd.DataFrame([dict(critical_profile, is_active=False), dict(low_risk_profile, is_active=True)])
	students_file = tmp_path / "students.csv"
	students.to_csv(students_file, index=False)

	interventions = pd.DataFrame([
		{"intervention_id": "I1", "student_id": "S-CRIT", "intervention_type": "Counseling", "status": "Completed", "outcome": "Successful"},
		{"intervention_id": "I2", "student_id": "S-LOW", "intervention_type": "Counseling", "status": "In Progress", "outcome": None},
		{"intervention_id": "I3", "student_id": "S-GONE", "intervention_type": "Counseling", "status": "Completed", "outcome": "Successful"},
		{"intervention_id": "I4", "student_id": "S-LOW", "intervention_type": "Financial Aid", "status": "Completed", "outcome": "Not Successful"},
	])
	interventions_file = tmp_path / "interventions.csv"
	interventions.to_csv(interventions_file, index=False)
	return CsvStudentRepository(students_file, interventions_file)


def test_csv_profiles(csv_repo):
	assert csv_repo.list_student_ids() == ["S-CRIT", "S-LOW"]
	profile = coerce_profile(csv_repo.get_profile("S-CRIT"))
	assert profile.father_education == "None"
	assert profile.has_behavioral_issues is True
	assert profile.failed_subjects_count == 4
	# grade_change is blank for S-LOW
	assert coerce_profile(csv_repo.get_profile("S-LOW")).grade_change is None
	with pytest.raises(StudentNotFoundError):
		csv_repo.get_profile("S-NOPE")


def test_csv_interventions_join_profiles(csv_repo):
	cases = csv_repo.completed_interventions("Counseling")
	# the case for an unknown student is dropped
	assert [c.intervention_id for c in cases] == ["I1", "I2"]
	assert cases[0].student_profile["student_id"] == "S-CRIT"
	assert cases[1].outcome is None
	assert len(csv_repo.completed_interventions("Transport Support")) == 0


def test_csv_historical_outcomes(csv_repo, tmp_path):
	outcomes = csv_repo.historical_outcomes()
	assert [(p["student_id"], active) for p, active in outcomes] == [("S-CRIT", False), ("S-LOW", True)]

	examples = load_training_examples(tmp_path / "students.csv")
	assert [e.label for e in examples] == [1, 0]


def test_in_memory_repository(critical_profile, low_risk_profile):
	repo = InMemoryStudentRepository(
		[dict(critical_profile, is_active=False), low_risk_profile],
		[{"intervention_type": "Counseling", "outcome": "Successful", "student_profile": critical_profile}],
	)
	assert repo.list_student_ids() == ["S-CRIT", "S-LOW"]
	assert [active for _, active in repo.historical_outcomes()] == [False]
	assert len(repo.completed_interventions("Counseling")) == 1
	with pytest.raises(StudentNotFoundError):
		repo.get_profile("S-NOPE")


def test_generated_rows_are_valid_profiles():
	df = generate_rows(60, seed=3)
	assert len(df) == 60
	assert df["student_id"].is_unique
	for rec in df.to_dict(orient="records"):
		coerce_profile(rec)

	interventions = generate_interventions(df, 30, seed=3)
	assert len(interventions) == 30
	assert set(interventions["student_id"]) <= set(df["student_id"])
	completed = interventions[interventions["status"] == "Completed"]
	assert completed["outcome"].notna().all()
