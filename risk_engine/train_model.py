from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
from sklearn.ensemble import RandomForestClassifier
from sklearn.metrics import accuracy_score, classification_report, log_loss, roc_auc_score
from sklearn.model_selection import train_test_split
from sklearn.neural_network import MLPClassifier

from .config import (
	APP_LOG_FILE,
	FEATURE_NAMES,
	MAX_TRAINING_ITERATIONS,
	MIN_TRAINING_SAMPLES,
	MODEL_TYPE,
	MODELS_DIR,
	RANDOM_STATE,
	STUDENTS_FILE,
	VALIDATION_SIZE,
)
from .errors import TrainingDataError
from .schemas import TrainingExample
from .utils import setup_logging

logger = logging.getLogger("train")

MODEL_TYPES = ("random_forest", "xgboost", "mlp")


def choose_model(model_type: str = MODEL_TYPE, iterations: int = MAX_TRAINING_ITERATIONS) -> object:
	"""Binary classifier whose training is bounded by ``iterations``."""
	if model_type == "xgboost":
		from xgboost import XGBClassifier

		return XGBClassifier(
			n_estimators=iterations,
			max_depth=6,
			learning_rate=0.1,
			random_state=RANDOM_STATE,
			eval_metric="logloss",
			subsample=0.9,
			colsample_bytree=0.9,
			n_jobs=4,
		)
	if model_type == "mlp":
		# Dense 64-32-16 network with a sigmoid output
		return MLPClassifier(
			hidden_layer_sizes=(64, 32, 16),
			activation="relu",
			solver="adam",
			learning_rate_init=0.001,
			batch_size=32,
			max_iter=iterations,
			random_state=RANDOM_STATE,
		)
	if model_type != "random_forest":
		raise ValueError(f"Unknown model type {model_type!r}, expected one of {MODEL_TYPES}")
	return RandomForestClassifier(
		n_estimators=iterations,
		max_depth=None,
		random_state=RANDOM_STATE,
		class_weight="balanced_subsample",
	)


def positive_proba(model: object, X: np.ndarray) -> np.ndarray:
	proba = np.asarray(model.predict_proba(X))
	if proba.ndim == 2:
		classes = list(getattr(model, "classes_", [0, 1]))
		return proba[:, classes.index(1)] if 1 in classes else np.zeros(len(X))
	return proba


def binary_metrics(y_true: np.ndarray, prob: np.ndarray) -> Dict[str, float]:
	y_true = np.asarray(y_true, dtype=int)
	prob = np.clip(np.asarray(prob, dtype=float), 1e-7, 1 - 1e-7)
	pred = (prob >= 0.5).astype(int)
	return {
		"accuracy": float(accuracy_score(y_true, pred)),
		"loss": float(log_loss(y_true, prob, labels=[0, 1])),
	}


def validate_training_set(X: np.ndarray, y: np.ndarray) -> None:
	if len(y) == 0:
		raise TrainingDataError("No training data available")
	if len(y) < MIN_TRAINING_SAMPLES:
		raise TrainingDataError(f"Need at least {MIN_TRAINING_SAMPLES} samples, got {len(y)}")
	if len(np.unique(y)) < 2:
		raise TrainingDataError("Training labels contain a single class")
	if X.shape[1] != len(FEATURE_NAMES):
		raise TrainingDataError(f"Expected {len(FEATURE_NAMES)} features, got {X.shape[1]}")


def split_validation(X: np.ndarray, y: np.ndarray, validation_size: float = VALIDATION_SIZE) -> Tuple:
	_, counts = np.unique(y, return_counts=True)
	stratify = y if counts.min() >= 2 else None
	return train_test_split(X, y, test_size=validation_size, random_state=RANDOM_STATE, stratify=stratify)


def fit_classifier(
	X: np.ndarray,
	y: np.ndarray,
	model_type: str = MODEL_TYPE,
	iterations: int = MAX_TRAINING_ITERATIONS,
	validation_size: float = VALIDATION_SIZE,
) -> Tuple[object, Dict[str, Optional[float]]]:
	"""Fit a fresh classifier on a training split and score it on the held-out split."""
	X = np.asarray(X, dtype=float)
	y = np.asarray(y, dtype=int)
	validate_training_set(X, y)

	X_train, X_val, y_train, y_val = split_validation(X, y, validation_size)
	if len(np.unique(y_train)) < 2:
		raise TrainingDataError("Training split lost one of the classes")

	model = choose_model(model_type, iterations)
	logger.info(f"Training {model_type} on {len(y_train)} samples ({len(y_val)} held out)...")
	model.fit(X_train, y_train)

	train_scores = binary_metrics(y_train, positive_proba(model, X_train))
	metrics: Dict[str, Optional[float]] = {
		"train_samples": len(y_train),
		"validation_samples": len(y_val),
		"train_accuracy": train_scores["accuracy"],
		"train_loss": train_scores["loss"],
		"validation_accuracy": None,
		"validation_loss": None,
		"validation_auc": None,
	}
	if len(y_val):
		proba_val = positive_proba(model, X_val)
		val_scores = binary_metrics(y_val, proba_val)
		metrics["validation_accuracy"] = val_scores["accuracy"]
		metrics["validation_loss"] = val_scores["loss"]
		if len(np.unique(y_val)) > 1:
			metrics["validation_auc"] = float(roc_auc_score(y_val, proba_val))
			report = classification_report(y_val, (proba_val >= 0.5).astype(int), output_dict=True, zero_division=0)
			logger.info(json.dumps(report, indent=2))
	logger.info(
		f"Train acc: {metrics['train_accuracy']:.4f}, loss: {metrics['train_loss']:.4f}; "
		f"validation acc: {metrics['validation_accuracy']}, loss: {metrics['validation_loss']}"
	)
	return model, metrics


def compute_global_importance(model: object, X: np.ndarray, y: np.ndarray) -> Dict[str, float]:
	"""Mean absolute SHAP value per feature for tree models, permutation importance otherwise."""
	X = np.asarray(X, dtype=float)
	vals: Optional[np.ndarray] = None
	if hasattr(model, "feature_importances_"):
		try:
			import shap

			explainer = shap.TreeExplainer(model)
			shap_values = explainer.shap_values(X)
			if isinstance(shap_values, list):
				vals = np.abs(shap_values[-1]).mean(axis=0)
			else:
				vals = np.abs(shap_values).mean(axis=0)
		except Exception as exc:
			logger.warning(f"SHAP importance failed ({exc}); using permutation importance")
	if vals is None:
		from sklearn.inspection import permutation_importance

		result = permutation_importance(model, X, y, n_repeats=5, random_state=RANDOM_STATE)
		vals = result.importances_mean

	# Coerce to 1-D and align lengths
	vals = np.asarray(vals)
	while vals.ndim > 1:
		vals = vals.mean(axis=-1)
	vals = vals.ravel()
	k = min(len(FEATURE_NAMES), len(vals))
	return {FEATURE_NAMES[i]: float(vals[i]) for i in range(k)}


def load_training_examples(data_path: Path) -> List[TrainingExample]:
	"""Read historical outcomes from a students CSV with an ``is_active`` column."""
	from .data import CsvStudentRepository
	from .model import examples_from_outcomes

	repo = CsvStudentRepository(students_file=data_path)
	return examples_from_outcomes(repo.historical_outcomes())


def main() -> None:
	parser = argparse.ArgumentParser(description="Train the dropout prediction model")
	parser.add_argument("--data", type=str, default=str(STUDENTS_FILE))
	parser.add_argument("--models-dir", type=str, default=str(MODELS_DIR))
	parser.add_argument("--model-type", type=str, default=MODEL_TYPE, choices=MODEL_TYPES)
	parser.add_argument("--iterations", type=int, default=MAX_TRAINING_ITERATIONS)
	args = parser.parse_args()

	setup_logging(APP_LOG_FILE)
	from .model import PredictiveModel

	logger.info(f"Loading data from {args.data}")
	examples = load_training_examples(Path(args.data))
	model = PredictiveModel(Path(args.models_dir), model_type=args.model_type, iterations=args.iterations)
	metrics = model.train(examples)
	logger.info(f"Training complete: {metrics.model_dump_json()}")


if __name__ == "__main__":
	main()
