import os
from pathlib import Path

# Directories
PROJECT_ROOT = Path(os.getenv("RISK_ENGINE_HOME", Path(__file__).resolve().parents[1]))
DATA_DIR = PROJECT_ROOT / "data"
MODELS_DIR = Path(os.getenv("RISK_MODELS_DIR", PROJECT_ROOT / "models"))
LOGS_DIR = PROJECT_ROOT / "logs"

# Canonical CSV sources for the accessors
STUDENTS_FILE = DATA_DIR / "students.csv"
INTERVENTIONS_FILE = DATA_DIR / "interventions.csv"

# Model artifacts
MODEL_FILE_PATTERN = "model_v{version}.joblib"
METADATA_FILE_NAME = "metadata.json"
GLOBAL_IMPORTANCE_FILE_NAME = "global_importance.json"
METADATA_FILE = MODELS_DIR / METADATA_FILE_NAME
GLOBAL_IMPORTANCE_FILE = MODELS_DIR / GLOBAL_IMPORTANCE_FILE_NAME

# Logging
APP_LOG_FILE = LOGS_DIR / "app.log"

# Category weights, must sum to 1.0
RISK_WEIGHTS = {
	"attendance": 0.25,
	"academic": 0.25,
	"financial": 0.15,
	"behavioral": 0.10,
	"health": 0.10,
	"distance": 0.10,
	"family": 0.05,
}

CATEGORY_LABELS = {
	"attendance": "Attendance",
	"academic": "Academic",
	"financial": "Financial",
	"behavioral": "Behavioral",
	"health": "Health",
	"distance": "Transportation",
	"family": "Family",
}

# Risk level thresholds: score < LOW -> Low, < MEDIUM -> Medium, < HIGH -> High, else Critical
RISK_THRESHOLD_LOW = float(os.getenv("RISK_THRESHOLD_LOW", 30))
RISK_THRESHOLD_MEDIUM = float(os.getenv("RISK_THRESHOLD_MEDIUM", 60))
RISK_THRESHOLD_HIGH = float(os.getenv("RISK_THRESHOLD_HIGH", 80))

RISK_LEVEL_THRESHOLDS = [
	(RISK_THRESHOLD_LOW, "Low"),
	(RISK_THRESHOLD_MEDIUM, "Medium"),
	(RISK_THRESHOLD_HIGH, "High"),
]
TOP_RISK_LEVEL = "Critical"
RISK_LEVELS = ["Low", "Medium", "High", "Critical"]

# Rule table. Tiers are (lower bound, points) checked top-down with ">=" unless noted.
RULES = {
	"attendance": {
		"percentage_tiers": [(95, 0, "Excellent"), (85, 15, "Good"), (75, 35, "Fair"), (60, 60, "Poor")],
		"percentage_floor": (85, "Critical"),
		"consecutive_absence_tiers": [(5, 15), (3, 8)],
	},
	"academic": {
		"percentage_tiers": [(75, 0, "Excellent"), (60, 20, "Good"), (45, 45, "Fair"), (33, 70, "Poor")],
		"percentage_floor": (90, "Critical"),
		"failed_subject_tiers": [(3, 10), (2, 5)],
		"trend_points": {"Declining": 10, "Improving": -5},
	},
	"financial": {
		"income_points": {
			"Below Poverty Line": 80,
			"Low Income": 50,
			"Middle Income": 20,
			"High Income": 0,
		},
		"economic_distress": 20,
		"uneducated_parent": 10,
	},
	"behavioral": {
		"behavioral_issues": 60,
		# strictly greater than
		"late_coming_tiers": [(20, 20), (10, 10)],
		"previous_dropout_attempt": 20,
		# grade_change below this many percentage points
		"decline_swing": -10,
		"decline_points": 10,
	},
	"health": {
		"health_issues": 60,
	},
	"distance": {
		# strictly greater than
		"distance_tiers": [(10, 50), (5, 30), (2, 15)],
		"walking_limit_km": 3,
		"walking_points": 20,
	},
	"family": {
		"family_problems": 70,
		# strictly greater than
		"sibling_tiers": [(4, 15), (2, 10)],
	},
}

# Recommendations are emitted only for categories whose sub-score exceeds this
ACTIONABLE_CUTOFF = float(os.getenv("ACTIONABLE_CUTOFF", 50))
CRITICAL_PRIORITY_SCORE = 80

RECOMMENDATION_TEMPLATES = {
	"attendance": [
		("Immediate Parent Meeting", "Schedule urgent meeting with parents to discuss attendance issues", "High", "Easy"),
		("Daily Attendance Monitoring", "Implement daily check-ins and follow-ups for absences", "Medium", "Medium"),
	],
	"academic": [
		("Remedial Classes", "Enroll student in after-school remedial classes", "High", "Medium"),
		("Peer Tutoring", "Assign peer tutor for struggling subjects", "Medium", "Easy"),
	],
	"financial": [
		("Financial Aid Assessment", "Evaluate eligibility for scholarships and financial assistance", "High", "Medium"),
	],
	"behavioral": [
		("Counseling Sessions", "Schedule regular counseling sessions to address behavioral issues", "High", "Medium"),
	],
	"health": [
		("Health Assessment", "Refer to school health services for medical evaluation", "Medium", "Easy"),
	],
	"distance": [
		("Transport Support", "Arrange school bus access or a transport allowance for the daily commute", "Medium", "Hard"),
	],
	"family": [
		("Family Counseling", "Arrange a home visit and family counseling through the school counselor", "Medium", "Medium"),
	],
}

# Dropout timeline bands on the 0-100 probability scale
DROPOUT_TIMELINES = [
	(80, "1-3 months", "Critical"),
	(60, "3-6 months", "High"),
	(40, "6-12 months", "Medium"),
]
DEFAULT_TIMELINE = ("Low risk", "Low")

# Feature definitions, fixed order
FEATURE_NAMES = [
	"attendance_percentage",
	"overall_percentage",
	"failed_subjects_count",
	"consecutive_absences",
	"late_coming_count",
	"distance_from_school",
	"family_income_level",
	"has_health_issues",
	"has_behavioral_issues",
	"has_family_problems",
	"has_economic_distress",
	"previous_dropout_attempts",
	"siblings_count",
	"parent_education_level",
]
FEATURE_MAX_VALUES = [100, 100, 10, 30, 50, 50, 3, 1, 1, 1, 1, 5, 10, 6]

INCOME_LEVELS = {
	"Below Poverty Line": 0,
	"Low Income": 1,
	"Middle Income": 2,
	"High Income": 3,
}

EDUCATION_LEVELS = {
	"None": 0,
	"Primary": 1,
	"Secondary": 2,
	"Higher Secondary": 3,
	"Graduate": 4,
	"Post Graduate": 5,
	"Doctorate": 6,
}

TRANSPORT_MODES = ["Walk", "Bicycle", "School Bus", "Public Transport", "Private Vehicle"]
ACADEMIC_TRENDS = ["Improving", "Stable", "Declining", "Unknown"]

# Trend tracking
TREND_TOLERANCE = float(os.getenv("TREND_TOLERANCE", 2.0))

# Intervention effectiveness
SIMILARITY_THRESHOLD = 0.6
OUTCOME_SCORES = {
	"Successful": 90,
	"Partially Successful": 60,
	"Not Successful": 20,
}
COMPLETED_STATUS = "Completed"
NEUTRAL_EFFECTIVENESS = 50.0
CONFIDENCE_PER_CASE = 10
MAX_INTERVENTION_CONFIDENCE = 90
NO_HISTORY_CONFIDENCE = 25
NO_MATCH_CONFIDENCE = 30

# ML settings
MODEL_TYPE = os.getenv("MODEL_TYPE", "random_forest")
MAX_TRAINING_ITERATIONS = int(os.getenv("MAX_TRAINING_ITERATIONS", 300))
VALIDATION_SIZE = 0.2
RANDOM_STATE = 42
MIN_TRAINING_SAMPLES = int(os.getenv("MIN_TRAINING_SAMPLES", 10))
FALLBACK_CONFIDENCE = 75
TOP_FACTOR_COUNT = 5
BATCH_WORKERS = int(os.getenv("BATCH_WORKERS", 4))

# Database
DB_URL = os.getenv("DB_URL", f"sqlite:///{(DATA_DIR / 'risk_history.db').as_posix()}")

# Scheduler
SWEEP_CRON = os.getenv("SWEEP_CRON", "0 2 * * *")  # daily 2am by default
RAPID_CHECK_HOURS = int(os.getenv("RAPID_CHECK_HOURS", 6))
RAPID_INCREASE_POINTS = 15
RAPID_INCREASE_DAYS = 7
RAPID_WINDOW_DAYS = 30

# Academic year starts in April
ACADEMIC_YEAR_START_MONTH = 4
