"""Trainable dropout classifier with an explicit load lifecycle.

``Unloaded -> Loading -> Ready`` when a persisted model is found, otherwise
``Unloaded -> Loading -> FallbackReady``. In either ready state ``predict``
always returns a result: inference failures fall back to the rule-based
estimate. Training is serialized and swaps the fitted model in only once it
has been persisted.
"""
from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import joblib
import numpy as np
from pydantic import ValidationError

from .config import (
	BATCH_WORKERS,
	FALLBACK_CONFIDENCE,
	FEATURE_NAMES,
	GLOBAL_IMPORTANCE_FILE_NAME,
	MAX_TRAINING_ITERATIONS,
	METADATA_FILE_NAME,
	MODEL_FILE_PATTERN,
	MODEL_TYPE,
	MODELS_DIR,
	VALIDATION_SIZE,
)
from .errors import InvalidProfileError, ModelUnavailableError, TrainingDataError, TrainingInProgressError
from .features import extract, feature_confidence
from .schemas import EvaluationResult, PredictionResult, StudentProfile, TrainingExample, TrainingMetrics, coerce_profile
from .scoring import compute_sub_scores, dropout_timeline, key_factors, risk_level, rule_based_probability, weighted_total
from .train_model import binary_metrics, compute_global_importance, fit_classifier, positive_proba
from .utils import clamp, load_json, save_json, utcnow

logger = logging.getLogger("model")

ProfileInput = Union[StudentProfile, Mapping[str, Any]]


class ModelState(str, Enum):
	UNLOADED = "Unloaded"
	LOADING = "Loading"
	READY = "Ready"
	FALLBACK_READY = "FallbackReady"


@dataclass(frozen=True)
class ModelBundle:
	classifier: Any
	version: int
	model_type: str
	trained_at: Optional[str]
	path: Path
	metrics: Dict[str, Any] = field(default_factory=dict)

	@property
	def version_label(self) -> str:
		return f"v{self.version}"


class PredictiveModel:
	def __init__(
		self,
		models_dir: Path = MODELS_DIR,
		model_type: str = MODEL_TYPE,
		iterations: int = MAX_TRAINING_ITERATIONS,
		validation_size: float = VALIDATION_SIZE,
		max_workers: int = BATCH_WORKERS,
	) -> None:
		self.models_dir = Path(models_dir)
		self.model_type = model_type
		self.iterations = iterations
		self.validation_size = validation_size
		self.max_workers = max_workers
		self._bundle: Optional[ModelBundle] = None
		self._state = ModelState.UNLOADED
		self._state_lock = threading.Lock()
		self._train_lock = threading.Lock()

	@property
	def state(self) -> ModelState:
		return self._state

	@property
	def metadata_file(self) -> Path:
		return self.models_dir / METADATA_FILE_NAME

	@property
	def training_in_progress(self) -> bool:
		return self._train_lock.locked()

	def init(self) -> ModelState:
		"""Load the current persisted model once; safe to call repeatedly."""
		with self._state_lock:
			if self._state in (ModelState.READY, ModelState.FALLBACK_READY):
				return self._state
			self._state = ModelState.LOADING
			try:
				self._bundle = self._load_current()
				self._state = ModelState.READY
				logger.info(f"ML model {self._bundle.version_label} loaded from {self._bundle.path}")
			except Exception as exc:
				self._bundle = None
				self._state = ModelState.FALLBACK_READY
				logger.warning(f"No usable model in {self.models_dir} ({exc}); using rule-based predictions")
			return self._state

	def force_fallback(self) -> None:
		with self._state_lock:
			self._bundle = None
			self._state = ModelState.FALLBACK_READY

	def _load_current(self) -> ModelBundle:
		meta = load_json(self.metadata_file)
		if meta.get("feature_names") != FEATURE_NAMES:
			raise ValueError("persisted model was trained on a different feature set")
		path = self.models_dir / meta["model_file"]
		classifier = joblib.load(path)
		return ModelBundle(
			classifier=classifier,
			version=int(meta["version"]),
			model_type=meta.get("model_type", self.model_type),
			trained_at=meta.get("trained_at"),
			path=path,
			metrics=meta.get("metrics", {}),
		)

	def _model_probability(self, bundle: Optional[ModelBundle], vector: np.ndarray) -> float:
		if bundle is None:
			raise ModelUnavailableError("no fitted classifier loaded")
		prob = float(positive_proba(bundle.classifier, vector.reshape(1, -1))[0])
		if not math.isfinite(prob):
			raise ValueError(f"classifier returned {prob}")
		return prob * 100.0

	def predict(self, profile: ProfileInput) -> PredictionResult:
		"""Dropout probability for one student.

		Raises InvalidProfileError for malformed input; never raises because the
		model is missing or broken.
		"""
		profile = coerce_profile(profile)
		if self._state == ModelState.UNLOADED:
			self.init()

		vector = extract(profile)
		confidence = feature_confidence(vector)
		sub_scores = compute_sub_scores(profile)
		bundle = self._bundle
		method = "model"
		try:
			probability = self._model_probability(bundle, vector)
		except ModelUnavailableError:
			method = "rule-based"
		except Exception as exc:
			logger.warning(f"Model inference failed for student {profile.student_id}: {exc}; using rule-based estimate")
			method = "rule-based"
		if method == "rule-based":
			probability = weighted_total(sub_scores)
			confidence = min(confidence, FALLBACK_CONFIDENCE)
			bundle = None

		probability = round(clamp(probability), 2)
		timeline, urgency = dropout_timeline(probability)
		return PredictionResult(
			student_id=profile.student_id,
			probability=probability,
			confidence=clamp(confidence),
			method=method,
			factors=key_factors(sub_scores),
			risk_level=risk_level(probability),
			timeline=timeline,
			urgency=urgency,
			model_version=bundle.version_label if bundle else None,
		)

	def _predict_isolated(self, profile: ProfileInput) -> Optional[PredictionResult]:
		try:
			return self.predict(profile)
		except InvalidProfileError as exc:
			logger.warning(f"Skipping invalid profile in batch: {exc}")
			return None

	def predict_batch(self, profiles: Sequence[ProfileInput]) -> List[PredictionResult]:
		"""Independent predictions; invalid profiles are omitted, input order is kept."""
		if not profiles:
			return []
		if self._state == ModelState.UNLOADED:
			self.init()
		with ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, len(profiles)))) as pool:
			results = list(pool.map(self._predict_isolated, profiles))
		return [r for r in results if r is not None]

	def train(self, examples: Iterable[Union[TrainingExample, Mapping[str, Any]]]) -> TrainingMetrics:
		"""Fit, persist, then atomically swap in a new classifier.

		Raises TrainingInProgressError if another run holds the lock and
		TrainingDataError if the examples cannot train a binary classifier.
		"""
		if not self._train_lock.acquire(blocking=False):
			raise TrainingInProgressError("a training run is already in progress")
		try:
			logger.info("Starting model training...")
			X, y = _to_arrays(examples)
			classifier, metrics = fit_classifier(
				X, y, model_type=self.model_type, iterations=self.iterations, validation_size=self.validation_size
			)
			importance = compute_global_importance(classifier, X, y)
			bundle = self._persist(classifier, metrics, importance)
			with self._state_lock:
				self._bundle = bundle
				self._state = ModelState.READY
			logger.info(f"Model training completed successfully, now serving {bundle.version_label}")
			return TrainingMetrics(
				version=bundle.version,
				trained_at=datetime.fromisoformat(bundle.trained_at),
				model_type=self.model_type,
				iterations=self.iterations,
				model_path=str(bundle.path),
				**metrics,
			)
		finally:
			self._train_lock.release()

	def _next_version(self) -> int:
		versions = [0]
		if self.metadata_file.exists():
			versions.append(int(load_json(self.metadata_file).get("version", 0)))
		for p in self.models_dir.glob(MODEL_FILE_PATTERN.format(version="*")):
			suffix = p.stem.rsplit("_v", 1)[-1]
			if suffix.isdigit():
				versions.append(int(suffix))
		return max(versions) + 1

	def _persist(self, classifier: Any, metrics: Dict[str, Any], importance: Dict[str, float]) -> ModelBundle:
		self.models_dir.mkdir(parents=True, exist_ok=True)
		version = self._next_version()
		model_file = MODEL_FILE_PATTERN.format(version=version)
		path = self.models_dir / model_file
		trained_at = utcnow().isoformat()
		joblib.dump(classifier, path)
		save_json(self.models_dir / GLOBAL_IMPORTANCE_FILE_NAME, importance)
		# metadata is written last; it names the model that loads on the next init()
		save_json(
			self.metadata_file,
			{
				"version": version,
				"model_file": model_file,
				"model_type": self.model_type,
				"trained_at": trained_at,
				"iterations": self.iterations,
				"feature_names": FEATURE_NAMES,
				"metrics": metrics,
			},
		)
		logger.info(f"Model saved to {path}")
		return ModelBundle(
			classifier=classifier,
			version=version,
			model_type=self.model_type,
			trained_at=trained_at,
			path=path,
			metrics=metrics,
		)

	def evaluate(self, test_set: Iterable[Union[TrainingExample, Mapping[str, Any]]]) -> EvaluationResult:
		"""Accuracy and log loss on labelled examples. Never changes model state."""
		examples = [_as_example(e) for e in test_set]
		if self._state == ModelState.UNLOADED:
			self.init()
		bundle = self._bundle
		if not examples:
			return EvaluationResult(accuracy=0.0, loss=0.0, sample_count=0, method="model" if bundle else "rule-based")

		if bundle is not None:
			X, y = _to_arrays(examples)
			try:
				scores = binary_metrics(y, positive_proba(bundle.classifier, X))
				return EvaluationResult(sample_count=len(y), method="model", **scores)
			except Exception as exc:
				logger.warning(f"Model evaluation failed ({exc}); evaluating the rule-based estimate")

		scored = [e for e in examples if e.profile is not None]
		if not scored:
			return EvaluationResult(accuracy=0.0, loss=0.0, sample_count=0, method="rule-based")
		y = np.asarray([e.label for e in scored], dtype=int)
		prob = np.asarray([rule_based_probability(e.profile) / 100.0 for e in scored])
		return EvaluationResult(sample_count=len(y), method="rule-based", **binary_metrics(y, prob))

	def model_info(self) -> Dict[str, Any]:
		bundle = self._bundle
		return {
			"state": self._state.value,
			"is_loaded": bundle is not None,
			"training_in_progress": self.training_in_progress,
			"model_type": bundle.model_type if bundle else self.model_type,
			"version": bundle.version if bundle else None,
			"trained_at": bundle.trained_at if bundle else None,
			"metrics": dict(bundle.metrics) if bundle else {},
			"feature_count": len(FEATURE_NAMES),
			"features": list(FEATURE_NAMES),
			"model_path": str(bundle.path) if bundle else None,
		}


def _as_example(item: Union[TrainingExample, Mapping[str, Any]]) -> TrainingExample:
	if isinstance(item, TrainingExample):
		return item
	try:
		return TrainingExample.model_validate(item)
	except ValidationError as exc:
		raise TrainingDataError(f"Malformed training example: {exc.errors()[0]['msg']}") from exc


def _to_arrays(examples: Iterable[Union[TrainingExample, Mapping[str, Any]]]) -> Tuple[np.ndarray, np.ndarray]:
	items = [_as_example(e) for e in examples]
	if not items:
		return np.empty((0, len(FEATURE_NAMES))), np.empty(0, dtype=int)
	X = np.asarray([e.features for e in items], dtype=float)
	y = np.asarray([e.label for e in items], dtype=int)
	return X, y


def example_from_profile(profile: ProfileInput, is_active: bool) -> TrainingExample:
	profile = coerce_profile(profile)
	return TrainingExample(features=extract(profile).tolist(), label=0 if is_active else 1, profile=profile)


def examples_from_outcomes(outcomes: Iterable[Tuple[ProfileInput, bool]]) -> List[TrainingExample]:
	"""Turn ``(profile, is_active)`` pairs into labelled examples, skipping invalid profiles."""
	examples: List[TrainingExample] = []
	skipped = 0
	for profile, is_active in outcomes:
		try:
			examples.append(example_from_profile(profile, is_active))
		except InvalidProfileError as exc:
			skipped += 1
			logger.warning(f"Skipping training record: {exc}")
	logger.info(f"Prepared training data: {len(examples)} samples ({skipped} skipped)")
	return examples
