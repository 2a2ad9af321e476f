from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Tuple

import numpy as np
import pandas as pd

from .config import (
	DATA_DIR,
	EDUCATION_LEVELS,
	INTERVENTIONS_FILE,
	STUDENTS_FILE,
	TRANSPORT_MODES,
)
from .scoring import rule_based_probability
from .utils import timestamp_str

INTERVENTION_TYPES = [
	"Counseling",
	"Remedial Classes",
	"Financial Aid",
	"Parent Meeting",
	"Transport Support",
]

# Which risk driver each intervention type mainly addresses
INTERVENTION_FOCUS = {
	"Counseling": "has_behavioral_issues",
	"Remedial Classes": "overall_percentage",
	"Financial Aid": "has_economic_distress",
	"Parent Meeting": "attendance_percentage",
	"Transport Support": "distance_from_school",
}


def _clip(x: float, low: float, high: float) -> float:
	return float(min(high, max(low, x)))


def generate_rows(n: int, seed: int = 42, missing_rate: float = 0.03) -> pd.DataFrame:
	"""Synthetic students with StudentProfile columns and a noisy ``is_active`` outcome."""
	rng = np.random.default_rng(seed)
	income_levels = ["Below Poverty Line", "Low Income", "Middle Income", "High Income"]
	education = list(EDUCATION_LEVELS)
	records: List[dict] = []

	for i in range(n):
		income = str(rng.choice(income_levels, p=[0.2, 0.35, 0.3, 0.15]))
		poor = income in {"Below Poverty Line", "Low Income"}
		location_rural = rng.random() < 0.6

		# Distance is higher in rural areas; poorer families walk more often
		distance = max(0.2, rng.normal(6.0 if location_rural else 2.5, 3.0))
		transport = str(rng.choice(TRANSPORT_MODES, p=[0.35, 0.2, 0.2, 0.15, 0.1] if poor else [0.1, 0.15, 0.35, 0.15, 0.25]))

		father_edu = str(rng.choice(education, p=[0.15, 0.2, 0.2, 0.15, 0.15, 0.1, 0.05]))
		mother_edu = str(rng.choice(education, p=[0.2, 0.25, 0.2, 0.15, 0.1, 0.07, 0.03]))

		economic_distress = bool(rng.random() < (0.35 if poor else 0.05))
		family_problems = bool(rng.random() < 0.12)
		health_issues = bool(rng.random() < 0.08)
		behavioral_issues = bool(rng.random() < 0.1)

		# Attendance and marks degrade with distance, poverty and distress
		attendance = _clip(
			rng.normal(88, 8) - 1.2 * max(0.0, distance - 3) - (8 if economic_distress else 0)
			- (10 if health_issues else 0) - (6 if family_problems else 0),
			20,
			100,
		)
		marks = _clip(
			rng.normal(68, 12) + 0.3 * (attendance - 85) - (6 if poor else 0)
			+ 2 * (EDUCATION_LEVELS[mother_edu] - 2),
			10,
			100,
		)
		failed = int(rng.poisson(0.3 + max(0.0, (50 - marks) / 12)))
		absences = int(rng.poisson(max(0.2, (100 - attendance) / 8)))
		late = int(rng.poisson(3 + (8 if behavioral_issues else 0) + (4 if transport == "Walk" else 0)))
		grade_change = float(np.round(rng.normal(-2 if marks < 50 else 1, 7), 1))
		if grade_change < -5:
			trend = "Declining"
		elif grade_change > 5:
			trend = "Improving"
		else:
			trend = "Stable"

		rec = {
			"student_id": f"STU{i + 1:05d}",
			"attendance_percentage": round(attendance, 1),
			"overall_percentage": round(marks, 1),
			"failed_subjects_count": failed,
			"consecutive_absences": absences,
			"late_coming_count": late,
			"distance_from_school": round(distance, 1),
			"transportation_mode": transport,
			"family_income_level": income,
			"father_education": father_edu,
			"mother_education": mother_edu,
			"has_health_issues": health_issues,
			"has_behavioral_issues": behavioral_issues,
			"has_family_problems": family_problems,
			"has_economic_distress": economic_distress,
			"previous_dropout_attempts": int(rng.random() < 0.05) + int(rng.random() < 0.02),
			"siblings_count": int(rng.poisson(2.2)),
			"academic_trend": trend,
			"grade_change": grade_change,
		}
		# Knock out a few optional inputs so the data is realistically incomplete
		for col in ("attendance_percentage", "distance_from_school", "father_education", "mother_education"):
			if rng.random() < missing_rate:
				rec[col] = None

		# Outcome: rule risk plus noise drives the dropout probability
		risk = rule_based_probability({k: v for k, v in rec.items() if v is not None}) / 100.0
		p_drop = 1.0 / (1.0 + np.exp(-(8.0 * (risk - 0.45) + rng.normal(0, 0.8))))
		rec["is_active"] = bool(rng.random() >= p_drop)
		records.append(rec)

	return pd.DataFrame.from_records(records)


def generate_interventions(students: pd.DataFrame, n: int, seed: int = 42) -> pd.DataFrame:
	"""Completed interventions whose outcome depends on how well the type fits the student."""
	rng = np.random.default_rng(seed + 1)
	outcomes = ["Successful", "Partially Successful", "Not Successful"]
	records: List[dict] = []
	ids = students["student_id"].tolist()
	by_id = students.set_index("student_id")

	for i in range(n):
		sid = ids[int(rng.integers(len(ids)))]
		row = by_id.loc[sid]
		itype = str(rng.choice(INTERVENTION_TYPES))
		fit = _intervention_fit(itype, row)
		probs = _outcome_probs(fit)
		status = "Completed" if rng.random() < 0.85 else rng.choice(["In Progress", "Cancelled"])
		records.append({
			"intervention_id": f"INT{i + 1:05d}",
			"student_id": sid,
			"intervention_type": itype,
			"status": status,
			"outcome": rng.choice(outcomes, p=probs) if status == "Completed" else None,
		})
	return pd.DataFrame.from_records(records)


def _intervention_fit(intervention_type: str, row: pd.Series) -> float:
	focus = INTERVENTION_FOCUS[intervention_type]
	value = row.get(focus)
	if value is None or (isinstance(value, float) and np.isnan(value)):
		return 0.5
	if focus == "overall_percentage":
		return 1.0 if value < 50 else 0.4
	if focus == "attendance_percentage":
		return 1.0 if value < 75 else 0.4
	if focus == "distance_from_school":
		return 1.0 if value > 5 else 0.3
	return 1.0 if bool(value) else 0.3


def _outcome_probs(fit: float) -> Tuple[float, float, float]:
	success = 0.2 + 0.5 * fit
	partial = 0.3
	return success, partial, max(0.0, 1.0 - success - partial)


def main() -> None:
	parser = argparse.ArgumentParser(description="Write a synthetic student population for training and demos")
	parser.add_argument("--rows", type=int, default=2000)
	parser.add_argument("--interventions", type=int, default=600)
	parser.add_argument("--out", type=str, default=str(STUDENTS_FILE))
	parser.add_argument("--interventions-out", type=str, default=str(INTERVENTIONS_FILE))
	parser.add_argument("--seed", type=int, default=42)
	args = parser.parse_args()

	df = generate_rows(args.rows, seed=args.seed)
	out_path = Path(args.out)
	out_path.parent.mkdir(parents=True, exist_ok=True)
	df.to_csv(out_path, index=False)
	print(f"Saved {len(df)} students to {out_path} (dropout rate {1 - df['is_active'].mean():.2%})")

	interventions = generate_interventions(df, args.interventions, seed=args.seed)
	int_path = Path(args.interventions_out)
	int_path.parent.mkdir(parents=True, exist_ok=True)
	interventions.to_csv(int_path, index=False)
	print(f"Saved {len(interventions)} interventions to {int_path}")

	# Also write a timestamped copy
	ts_path = DATA_DIR / f"students_{timestamp_str()}.csv"
	df.to_csv(ts_path, index=False)
	print(f"Saved timestamped copy to {ts_path}")


if __name__ == "__main__":
	main()
