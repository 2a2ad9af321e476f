from __future__ import annotations

from typing import Optional


class RiskEngineError(Exception):
	"""Base class for risk engine failures."""


class InvalidProfileError(RiskEngineError, ValueError):
	"""Malformed or out-of-range student input. Not retried."""

	def __init__(self, message: str, student_id: Optional[str] = None) -> None:
		self.student_id = student_id
		prefix = f"student {student_id}: " if student_id else ""
		super().__init__(f"{prefix}{message}")


class DataIncompleteWarning(UserWarning):
	"""Optional inputs are missing; computation proceeds with lower confidence."""


class ModelUnavailableError(RiskEngineError):
	"""No fitted classifier is loaded. Caught inside PredictiveModel."""


class TrainingInProgressError(RiskEngineError):
	"""Another training run holds the training lock."""


class TrainingDataError(RiskEngineError, ValueError):
	"""Training set is empty, too small, or has a single class."""


class StudentNotFoundError(RiskEngineError, KeyError):
	def __init__(self, student_id: str) -> None:
		self.student_id = student_id
		super().__init__(student_id)

	def __str__(self) -> str:
		return f"Student not found: {self.student_id}"
