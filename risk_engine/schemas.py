from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import FEATURE_NAMES
from .errors import InvalidProfileError

IncomeLevel = Literal["Below Poverty Line", "Low Income", "Middle Income", "High Income"]
EducationLevel = Literal["None", "Primary", "Secondary", "Higher Secondary", "Graduate", "Post Graduate", "Doctorate"]
TransportMode = Literal["Walk", "Bicycle", "School Bus", "Public Transport", "Private Vehicle"]
AcademicTrend = Literal["Improving", "Stable", "Declining", "Unknown"]
RiskLevel = Literal["Low", "Medium", "High", "Critical"]
RiskTrend = Literal["Improving", "Stable", "Worsening"]
PredictionMethod = Literal["model", "rule-based"]

# Inputs that lower data completeness when absent
OPTIONAL_INPUTS = [
	"attendance_percentage",
	"overall_percentage",
	"distance_from_school",
	"transportation_mode",
	"family_income_level",
	"father_education",
	"mother_education",
]


class StudentProfile(BaseModel):
	"""Read-only student attributes consumed by the engine."""

	model_config = ConfigDict(frozen=True, extra="ignore")

	student_id: str = ""
	attendance_percentage: Optional[float] = Field(None, ge=0, le=100, allow_inf_nan=False)
	overall_percentage: Optional[float] = Field(None, ge=0, le=100, allow_inf_nan=False)
	failed_subjects_count: int = Field(0, ge=0)
	consecutive_absences: int = Field(0, ge=0)
	late_coming_count: int = Field(0, ge=0)
	distance_from_school: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
	transportation_mode: Optional[TransportMode] = None
	family_income_level: Optional[IncomeLevel] = None
	father_education: Optional[EducationLevel] = None
	mother_education: Optional[EducationLevel] = None
	has_health_issues: bool = False
	has_behavioral_issues: bool = False
	has_family_problems: bool = False
	has_economic_distress: bool = False
	previous_dropout_attempts: int = Field(0, ge=0)
	siblings_count: int = Field(0, ge=0)
	academic_trend: AcademicTrend = "Unknown"
	grade_change: Optional[float] = Field(None, allow_inf_nan=False)
	health_details: Optional[str] = None
	behavioral_details: Optional[str] = None
	is_active: Optional[bool] = None

	def missing_fields(self) -> List[str]:
		return [name for name in OPTIONAL_INPUTS if getattr(self, name) is None]

	def data_completeness(self) -> float:
		missing = len(self.missing_fields())
		return round((len(OPTIONAL_INPUTS) - missing) / len(OPTIONAL_INPUTS) * 100.0, 2)


def coerce_profile(data: Union[StudentProfile, Mapping[str, Any]], student_id: Optional[str] = None) -> StudentProfile:
	"""Validate a mapping into a StudentProfile, raising InvalidProfileError on bad input."""
	if isinstance(data, StudentProfile):
		return data
	if not isinstance(data, Mapping):
		raise InvalidProfileError(f"expected a mapping, got {type(data).__name__}", student_id)
	record = {k: v for k, v in data.items() if not _is_blank(v)}
	if student_id is not None and "student_id" not in record:
		record["student_id"] = student_id
	try:
		return StudentProfile.model_validate(record)
	except ValidationError as exc:
		problems = "; ".join(
			f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
		)
		raise InvalidProfileError(problems, record.get("student_id") or student_id) from exc


def _is_blank(value: Any) -> bool:
	# pandas rows carry NaN for empty cells
	if value is None:
		return True
	if isinstance(value, float) and value != value:
		return True
	return isinstance(value, str) and not value.strip()


class SubScore(BaseModel):
	score: float = Field(ge=0, le=100)
	weight: float
	details: Dict[str, Any] = Field(default_factory=dict)

	@property
	def contribution(self) -> float:
		return self.score * self.weight


class Recommendation(BaseModel):
	priority: Literal["Low", "Medium", "High", "Critical"]
	category: str
	action: str
	description: str
	estimated_impact: Optional[Literal["Low", "Medium", "High"]] = None
	implementation_difficulty: Optional[Literal["Easy", "Medium", "Hard"]] = None


class KeyFactor(BaseModel):
	factor: str
	category: str
	score: float
	weight: float
	contribution: float
	severity: Literal["Low", "Medium", "High"]


class DropoutPrediction(BaseModel):
	probability: float = Field(ge=0, le=100)
	confidence: float = Field(ge=0, le=100)
	method: PredictionMethod
	factors: List[KeyFactor] = Field(default_factory=list)
	risk_level: Optional[RiskLevel] = None
	timeline: Optional[str] = None
	urgency: Optional[RiskLevel] = None


class PredictionResult(DropoutPrediction):
	"""Single-student output of PredictiveModel.predict."""

	model_config = ConfigDict(protected_namespaces=())

	student_id: str = ""
	model_version: Optional[str] = None


class RiskAssessment(BaseModel):
	model_config = ConfigDict(frozen=True, protected_namespaces=())

	student_id: str
	calculated_at: datetime
	academic_year: str
	attendance_risk: SubScore
	academic_risk: SubScore
	financial_risk: SubScore
	behavioral_risk: SubScore
	health_risk: SubScore
	distance_risk: SubScore
	family_risk: SubScore
	total_risk_score: float = Field(ge=0, le=100)
	risk_level: RiskLevel
	dropout_prediction: Optional[DropoutPrediction] = None
	recommendations: List[Recommendation] = Field(default_factory=list)
	previous_risk_score: Optional[float] = None
	risk_trend: Optional[RiskTrend] = None
	change_from_previous: Optional[float] = None
	data_completeness: float = Field(100.0, ge=0, le=100)
	missing_fields: List[str] = Field(default_factory=list)
	model_version: Optional[str] = None
	calculated_by: Literal["System", "Manual", "ML Model"] = "System"

	def sub_scores(self) -> Dict[str, SubScore]:
		return {
			"attendance": self.attendance_risk,
			"academic": self.academic_risk,
			"financial": self.financial_risk,
			"behavioral": self.behavioral_risk,
			"health": self.health_risk,
			"distance": self.distance_risk,
			"family": self.family_risk,
		}

	def to_json(self) -> str:
		return self.model_dump_json()

	@classmethod
	def from_json(cls, payload: Union[str, bytes]) -> "RiskAssessment":
		return cls.model_validate_json(payload)


class HistoricalIntervention(BaseModel):
	intervention_id: str = ""
	intervention_type: str
	status: str = "Completed"
	outcome: Optional[str] = None
	student_profile: Dict[str, Any] = Field(default_factory=dict)


class InterventionEffectivenessEstimate(BaseModel):
	effectiveness: float = Field(ge=0, le=100)
	confidence: float = Field(ge=0, le=100)
	similar_case_count: int = 0
	recommendation: str


class TrainingExample(BaseModel):
	"""One labelled sample: label 1 for a historical dropout, 0 for an active student."""

	features: List[float] = Field(min_length=len(FEATURE_NAMES), max_length=len(FEATURE_NAMES))
	label: int = Field(ge=0, le=1)
	profile: Optional[StudentProfile] = None


class TrainingMetrics(BaseModel):
	model_config = ConfigDict(protected_namespaces=())

	version: int
	trained_at: datetime
	model_type: str
	iterations: int
	train_samples: int
	validation_samples: int
	train_accuracy: float
	train_loss: float
	validation_accuracy: Optional[float] = None
	validation_loss: Optional[float] = None
	validation_auc: Optional[float] = None
	model_path: str


class EvaluationResult(BaseModel):
	accuracy: float
	loss: float
	sample_count: int
	method: PredictionMethod = "model"
