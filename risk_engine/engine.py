from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from .config import BATCH_WORKERS
from .data import InterventionHistorySource, OutcomeSource, StudentProfileSource
from .errors import InvalidProfileError, StudentNotFoundError
from .intervention import estimate_effectiveness
from .model import PredictiveModel, examples_from_outcomes
from .schemas import (
	DropoutPrediction,
	EvaluationResult,
	InterventionEffectivenessEstimate,
	RiskAssessment,
	TrainingMetrics,
	coerce_profile,
)
from .scoring import score
from .trend import attach_trend
from .utils import utcnow

logger = logging.getLogger("engine")

PreviousLookup = Callable[[str], Optional[RiskAssessment]]


class RiskEngine:
	"""Caller-facing entry point of the risk assessment core.

	All collaborators are injected: the student, intervention and outcome
	accessors, the PredictiveModel handle, and an optional lookup for a
	student's latest stored assessment. Nothing here persists results.
	"""

	def __init__(
		self,
		profiles: StudentProfileSource,
		model: PredictiveModel,
		interventions: Optional[InterventionHistorySource] = None,
		outcomes: Optional[OutcomeSource] = None,
		previous_assessment: Optional[PreviousLookup] = None,
		max_workers: int = BATCH_WORKERS,
	) -> None:
		self.profiles = profiles
		self.model = model
		self.interventions = interventions
		self.outcomes = outcomes
		self.previous_assessment = previous_assessment
		self.max_workers = max_workers

	def _load_profile(self, student_id: str):
		return coerce_profile(self.profiles.get_profile(student_id), student_id=student_id)

	def assess(self, student_id: str, now: Optional[datetime] = None) -> RiskAssessment:
		"""Rule-based score, model prediction and trend for one student.

		Raises StudentNotFoundError or InvalidProfileError; model problems only
		change the prediction method.
		"""
		profile = self._load_profile(student_id)
		assessment = score(profile, now=now or utcnow())
		prediction = self.model.predict(profile)
		assessment = assessment.model_copy(
			update={
				"dropout_prediction": DropoutPrediction(
					**prediction.model_dump(exclude={"student_id", "model_version"})
				),
				"model_version": prediction.model_version,
				"calculated_by": "ML Model" if prediction.method == "model" else "System",
			}
		)
		if self.previous_assessment is not None:
			assessment = attach_trend(assessment, self.previous_assessment(student_id))
		logger.info(
			f"Risk calculated for {student_id}: {assessment.total_risk_score:.2f} "
			f"({assessment.risk_level}, {prediction.method})"
		)
		return assessment

	def _assess_isolated(self, student_id: str) -> Optional[RiskAssessment]:
		try:
			return self.assess(student_id)
		except (InvalidProfileError, StudentNotFoundError) as exc:
			logger.warning(f"Omitting {student_id} from batch: {exc}")
			return None
		except Exception as exc:
			# collaborator failures (accessor, history lookup) stay confined to this student
			logger.warning(f"Omitting {student_id} from batch after unexpected error: {exc!r}")
			return None

	def assess_batch(self, student_ids: Sequence[str]) -> List[RiskAssessment]:
		"""Assess students independently; failures are omitted, order is kept."""
		if not student_ids:
			return []
		self.model.init()
		workers = max(1, min(self.max_workers, len(student_ids)))
		with ThreadPoolExecutor(max_workers=workers) as pool:
			results = list(pool.map(self._assess_isolated, student_ids))
		assessments = [r for r in results if r is not None]
		if len(assessments) < len(student_ids):
			logger.warning(f"Batch assessment omitted {len(student_ids) - len(assessments)} of {len(student_ids)} students")
		return assessments

	def estimate_intervention(self, student_id: str, intervention_type: str) -> InterventionEffectivenessEstimate:
		profile = self._load_profile(student_id)
		history = self.interventions.completed_interventions(intervention_type) if self.interventions else []
		return estimate_effectiveness(profile, intervention_type, history)

	def _training_examples(self):
		if self.outcomes is None:
			return []
		return examples_from_outcomes(self.outcomes.historical_outcomes())

	def train_model(self) -> TrainingMetrics:
		"""Administrative batch job: retrain on every student with a known outcome."""
		return self.model.train(self._training_examples())

	def evaluate_model(self, test_set=None) -> EvaluationResult:
		"""Score the current model on ``test_set``, or on all known outcomes when omitted."""
		if test_set is None:
			test_set = self._training_examples()
		return self.model.evaluate(test_set)
