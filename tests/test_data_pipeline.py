"""Unit tests for the SQLAlchemy-backed risk history store."""

from datetime import timedelta

from risk_engine.scoring import score


def _at(assessment, when, total=None, level=None):
	update = {"calculated_at": when}
	if total is not None:
		update["total_risk_score"] = total
	if level is not None:
		update["risk_level"] = level
	return assessment.model_copy(update=update)


def test_append_and_latest_round_trip(history_store, critical_profile, fixed_now):
	assessment = score(critical_profile, now=fixed_now)
	row_id = history_store.append(assessment)
	assert row_id > 0
	assert history_store.latest("S-CRIT") == assessment
	assert history_store.latest("S-UNKNOWN") is None


def test_history_is_ordered_and_windowed(history_store, low_risk_profile, fixed_now):
	base = score(low_risk_profile, now=fixed_now)
	old = _at(base, fixed_now - timedelta(days=400), total=40.0, level="Medium")
	mid = _at(base, fixed_now - timedelta(days=20), total=20.0)
	history_store.append(mid)
	history_store.append(old)
	history_store.append(base)

	full = history_store.history("S-LOW")
	assert [a.total_risk_score for a in full] == [40.0, 20.0, 0.0]
	assert history_store.latest("S-LOW") == base


def test_high_risk_and_distribution(history_store, low_risk_profile, critical_profile, fixed_now):
	low = score(low_risk_profile, now=fixed_now)
	crit = score(critical_profile, now=fixed_now)
	# an older High assessment is superseded by the latest one
	history_store.append(_at(low, fixed_now - timedelta(days=3), total=70.0, level="High"))
	history_store.append(low)
	history_store.append(crit)

	high = history_store.high_risk_students(limit=10)
	assert [a.student_id for a in high] == ["S-CRIT"]

	dist = history_store.risk_distribution()
	assert dist["Low"]["count"] == 1
	assert dist["Critical"]["count"] == 1
	assert dist["Critical"]["averageScore"] == crit.total_risk_score
	assert "High" not in dist


def test_rapid_increases(history_store, low_risk_profile, critical_profile, fixed_now):
	rising = score(critical_profile, now=fixed_now)
	history_store.append(_at(rising, fixed_now - timedelta(days=3), total=40.0, level="Medium"))
	history_store.append(_at(rising, fixed_now - timedelta(days=1), total=70.0, level="High"))

	slow = score(low_risk_profile, now=fixed_now)
	history_store.append(_at(slow, fixed_now - timedelta(days=25), total=10.0, level="Low"))
	history_store.append(_at(slow, fixed_now - timedelta(days=1), total=50.0, level="Medium"))

	flagged = history_store.rapid_increases(now=fixed_now)
	assert [f["student_id"] for f in flagged] == ["S-CRIT"]
	assert flagged[0]["risk_increase"] == 30.0
	assert flagged[0]["time_span_days"] == 2.0
