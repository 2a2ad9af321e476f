from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from .config import ACADEMIC_YEAR_START_MONTH


def setup_logging(app_log_path: Path, level: int = logging.INFO) -> None:
	app_log_path.parent.mkdir(parents=True, exist_ok=True)
	logging.basicConfig(
		level=level,
		format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
		handlers=[
			logging.FileHandler(app_log_path),
			logging.StreamHandler(),
		],
	)


def utcnow() -> datetime:
	return datetime.utcnow()


def timestamp_str() -> str:
	return utcnow().strftime("%Y%m%d_%H%M%S")


def save_json(path: Path, data: Dict) -> None:
	path.parent.mkdir(parents=True, exist_ok=True)
	tmp = path.with_suffix(path.suffix + ".tmp")
	with open(tmp, "w") as f:
		json.dump(data, f, indent=2, default=_json_default)
	tmp.replace(path)


def load_json(path: Path) -> Dict:
	with open(path, "r") as f:
		return json.load(f)


def _json_default(value):
	if hasattr(value, "isoformat"):
		return value.isoformat()
	raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def current_academic_year(now: Optional[datetime] = None) -> str:
	"""Academic year label such as "2026-2027"; the year rolls over in April."""
	now = now or utcnow()
	if now.month >= ACADEMIC_YEAR_START_MONTH:
		return f"{now.year}-{now.year + 1}"
	return f"{now.year - 1}-{now.year}"


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
	return max(low, min(high, float(value)))
