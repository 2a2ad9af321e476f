"""Read-only accessors for student profiles, intervention history and outcomes."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple, Union

import pandas as pd

from .config import INTERVENTIONS_FILE, STUDENTS_FILE
from .errors import StudentNotFoundError
from .schemas import HistoricalIntervention, StudentProfile

logger = logging.getLogger("data")

ProfileRecord = Union[StudentProfile, Mapping[str, Any]]


class StudentProfileSource(Protocol):
	def get_profile(self, student_id: str) -> ProfileRecord: ...

	def list_student_ids(self) -> List[str]: ...


class InterventionHistorySource(Protocol):
	def completed_interventions(self, intervention_type: str) -> List[HistoricalIntervention]: ...


class OutcomeSource(Protocol):
	def historical_outcomes(self) -> List[Tuple[ProfileRecord, bool]]: ...


class InMemoryStudentRepository:
	"""Accessors over plain records, for callers that already hold the data."""

	def __init__(
		self,
		profiles: Optional[Iterable[ProfileRecord]] = None,
		interventions: Optional[Iterable[Union[HistoricalIntervention, Mapping[str, Any]]]] = None,
	) -> None:
		self._profiles: Dict[str, ProfileRecord] = {}
		for p in profiles or []:
			sid = p.student_id if isinstance(p, StudentProfile) else str(p.get("student_id", ""))
			self._profiles[sid] = p
		self._interventions = [
			i if isinstance(i, HistoricalIntervention) else HistoricalIntervention.model_validate(i)
			for i in interventions or []
		]

	def get_profile(self, student_id: str) -> ProfileRecord:
		try:
			return self._profiles[student_id]
		except KeyError:
			raise StudentNotFoundError(student_id) from None

	def list_student_ids(self) -> List[str]:
		return list(self._profiles)

	def completed_interventions(self, intervention_type: str) -> List[HistoricalIntervention]:
		return [i for i in self._interventions if i.intervention_type == intervention_type]

	def historical_outcomes(self) -> List[Tuple[ProfileRecord, bool]]:
		outcomes = []
		for p in self._profiles.values():
			is_active = p.is_active if isinstance(p, StudentProfile) else p.get("is_active")
			if is_active is not None:
				outcomes.append((p, bool(is_active)))
		return outcomes


class CsvStudentRepository:
	"""pandas-backed accessors over ``students.csv`` and ``interventions.csv``.

	The students file holds one row per student with StudentProfile columns
	and an optional ``is_active`` outcome. The interventions file holds
	``intervention_id, student_id, intervention_type, status, outcome``.
	"""

	def __init__(self, students_file: Path = STUDENTS_FILE, interventions_file: Path = INTERVENTIONS_FILE) -> None:
		self.students_file = Path(students_file)
		self.interventions_file = Path(interventions_file)
		self._students: Optional[pd.DataFrame] = None

	def _load_students(self) -> pd.DataFrame:
		if self._students is None:
			if not self.students_file.exists():
				raise FileNotFoundError(f"Students file not found: {self.students_file}")
			# "None" is a valid education level, only empty cells are missing
			df = pd.read_csv(self.students_file, dtype={"student_id": str}, keep_default_na=False, na_values=[""])
			self._students = df.set_index("student_id", drop=False)
			logger.info(f"Loaded {len(df)} students from {self.students_file}")
		return self._students

	def reload(self) -> None:
		self._students = None

	def get_profile(self, student_id: str) -> Dict[str, Any]:
		df = self._load_students()
		if student_id not in df.index:
			raise StudentNotFoundError(student_id)
		return df.loc[[student_id]].to_dict(orient="records")[0]

	def list_student_ids(self) -> List[str]:
		return [str(s) for s in self._load_students()["student_id"].tolist()]

	def completed_interventions(self, intervention_type: str) -> List[HistoricalIntervention]:
		if not self.interventions_file.exists():
			return []
		df = pd.read_csv(
			self.interventions_file,
			dtype={"student_id": str, "intervention_id": str},
			keep_default_na=False,
			na_values=[""],
		)
		df = df[df["intervention_type"] == intervention_type]
		students = self._load_students()
		cases: List[HistoricalIntervention] = []
		for rec in df.to_dict(orient="records"):
			sid = rec["student_id"]
			if sid not in students.index:
				logger.warning(f"Intervention {rec.get('intervention_id')} refers to unknown student {sid}")
				continue
			outcome = rec.get("outcome")
			cases.append(
				HistoricalIntervention(
					intervention_id=str(rec.get("intervention_id", "")),
					intervention_type=intervention_type,
					status=str(rec.get("status", "")),
					outcome=outcome if isinstance(outcome, str) else None,
					student_profile=self.get_profile(sid),
				)
			)
		return cases

	def historical_outcomes(self) -> List[Tuple[Dict[str, Any], bool]]:
		df = self._load_students()
		if "is_active" not in df.columns:
			return []
		labelled = df[df["is_active"].notna()]
		return [(rec, _as_bool(rec["is_active"])) for rec in labelled.to_dict(orient="records")]


def _as_bool(value: Any) -> bool:
	if isinstance(value, str):
		return value.strip().lower() in {"1", "true", "yes"}
	return bool(value)
