"""Tests for premium prediction orchestration."""

from datetime import UTC, date, datetime, timedelta

import pytest

from sleep_engine.schemas.prediction import InsightFlag, SleepPredictionInput, StageDistribution
from sleep_engine.schemas.sleep import ConfidenceLevel, SleepRecord, UserProfile
from sleep_engine.services.physiology import PhysiologyEstimator
from sleep_engine.services.prediction import (
    SleepPredictionService,
    build_premium_prediction,
    calculate_recovery_index,
    compute_recent_sleep_debt,
    generate_insight_flags,
)

TODAY = date(2026, 2, 1)


def distribution(
    deep: float, rem: float, awake: float, confidence=ConfidenceLevel.MEDIUM
) -> StageDistribution:
    return StageDistribution(
        deep_percent=deep,
        rem_percent=rem,
        light_percent=100 - deep - rem - awake,
        awake_percent=awake,
        confidence=confidence,
    )


class TestRecentSleepDebt:
    """Tests for compute_recent_sleep_debt."""

    def test_last_week_of_history(self, history_14d):
        """Test debt sums the shortfalls of the seven most recent nights."""
        # Jan 24-30: 480, 475, 430, 450, 460, 455, 435 against 480
        assert compute_recent_sleep_debt(history_14d) == 175

    def test_empty_history(self):
        """Test no history means no debt."""
        assert compute_recent_sleep_debt([]) == 0

    def test_skips_nights_without_duration(self, history_14d):
        """Test empty nights do not take a slot in the window."""
        empty = SleepRecord(id="empty", date=date(2026, 1, 31), duration_minutes=0)

        assert compute_recent_sleep_debt([*history_14d, empty]) == 175


class TestRecoveryIndex:
    """Tests for calculate_recovery_index."""

    def test_full_recovery_with_some_debt(self):
        """Test reference stages and duration with 200 minutes of debt."""
        data = SleepPredictionInput(duration_minutes=480, sleep_debt_minutes=200)

        assert calculate_recovery_index(distribution(20, 22, 5), data) == 95

    def test_poor_recovery(self):
        """Test half-reference stages, four hours and heavy debt."""
        data = SleepPredictionInput(duration_minutes=240, sleep_debt_minutes=400)

        assert calculate_recovery_index(distribution(10, 11, 5), data) == 45


class TestInsightFlags:
    """Tests for generate_insight_flags."""

    def test_poor_night_flags(self):
        """Test low deep, REM rebound, fragmentation and high debt."""
        data = SleepPredictionInput(duration_minutes=360, sleep_debt_minutes=200)

        flags = generate_insight_flags(
            distribution(10, 30, 16, ConfidenceLevel.LOW), data, recovery_index=50
        )

        assert flags == [
            InsightFlag.LOW_DEEP,
            InsightFlag.REM_REBOUND,
            InsightFlag.HIGH_FRAGMENTATION,
            InsightFlag.SLEEP_DEBT_HIGH,
        ]

    def test_optimal_deep_needs_trusted_prediction(self):
        """Test optimal deep and aerobic advantage are withheld at low confidence."""
        data = SleepPredictionInput(duration_minutes=480, vo2max=55)

        trusted = generate_insight_flags(distribution(22, 22, 5), data, 90)
        untrusted = generate_insight_flags(
            distribution(22, 22, 5, ConfidenceLevel.LOW), data, 90
        )

        assert trusted == [InsightFlag.OPTIMAL_DEEP, InsightFlag.AEROBIC_ADVANTAGE]
        assert untrusted == []

    def test_debt_clearing(self):
        """Test a strong night against moderate debt is flagged as clearing it."""
        data = SleepPredictionInput(duration_minutes=480, sleep_debt_minutes=150)

        flags = generate_insight_flags(distribution(18, 22, 5), data, 85)

        assert flags == [InsightFlag.SLEEP_DEBT_CLEARING]


class TestSleepPredictionService:
    """Tests for SleepPredictionService."""

    def test_build_prediction_input(self, good_night, profile, history_14d):
        """Test the input combines record, estimated physiology and history."""
        data = SleepPredictionService().build_prediction_input(
            good_night, profile, history_14d, today=TODAY
        )

        assert data.age == 30
        assert data.duration_minutes == 480
        assert data.deep_minutes == 96
        assert data.resting_hr == pytest.approx(46.9)
        assert data.vo2max == pytest.approx(52.3)
        assert data.sleep_debt_minutes == 175
        assert data.recent_avg_deep_percent == pytest.approx(20.0)
        assert data.recent_avg_rem_percent == pytest.approx(22.0, abs=0.2)

    def test_build_prediction_input_without_history(self, good_night):
        """Test an empty history gives no debt and no personal averages."""
        data = SleepPredictionService().build_prediction_input(good_night, today=TODAY)

        assert data.age is None
        assert data.sleep_debt_minutes == 0
        assert data.recent_avg_deep_percent is None
        assert data.recent_avg_rem_percent is None

    def test_premium_prediction_from_real_stages(self, good_night, profile, history_14d, now):
        """Test a night with real stages gives a high-confidence bundle."""
        service = SleepPredictionService()
        data = service.build_prediction_input(good_night, profile, history_14d, today=TODAY)

        prediction = service.build_premium_prediction(data, now)

        assert prediction.stage_distribution.confidence == ConfidenceLevel.HIGH
        assert prediction.stage_distribution.prediction_basis == ["existing_stage_data"]
        assert prediction.stage_distribution.total_percent == pytest.approx(100)
        assert prediction.cycle_map is not None
        assert prediction.cycle_map.total_minutes == 480
        assert prediction.recovery_index == 96
        assert InsightFlag.AEROBIC_ADVANTAGE in prediction.insight_flags
        assert InsightFlag.SLEEP_DEBT_CLEARING in prediction.insight_flags
        assert InsightFlag.SLEEP_DEBT_HIGH not in prediction.insight_flags
        assert prediction.estimated_physiology.hr_max == pytest.approx(186.0)
        assert prediction.generated_at == now

    def test_predicted_score_uses_prediction_source(self, now):
        """Test the predicted night is scored as a prediction-sourced record."""
        data = SleepPredictionInput(
            age=40,
            start_time="2026-01-31T23:00:00+00:00",
            duration_minutes=450,
            resting_hr=62,
        )

        prediction = build_premium_prediction(data, now)

        score = prediction.predicted_score
        assert 0 < score.sleep_score <= 100
        assert score.breakdown.adjustments.source_reliability_factor == 0.85
        assert score.breakdown.calculated_at == now
        assert prediction.stage_distribution.confidence == ConfidenceLevel.LOW
        assert prediction.cycle_map.phase_timeline[0].duration_minutes == 14

    def test_invalid_timeline_is_left_out(self, now):
        """Test a timeline failing its invariants is dropped from the bundle."""
        start = datetime(2026, 1, 31, 23, 0, tzinfo=UTC)
        data = SleepPredictionInput(
            age=30,
            start_time=start,
            end_time=start + timedelta(minutes=483),
            duration_minutes=480,
        )

        prediction = SleepPredictionService().build_premium_prediction(data, now)

        assert prediction.cycle_map is None
        assert prediction.predicted_score.sleep_score > 0
        assert prediction.recovery_index > 0

    def test_undated_input_uses_reference_time(self, now):
        """Test a prediction without start time is laid out from ``now``."""
        prediction = build_premium_prediction(
            SleepPredictionInput(age=30, duration_minutes=420), now
        )

        assert prediction.cycle_map.phase_timeline[0].start_time == now
        assert prediction.estimated_physiology.hr_max == pytest.approx(186.0)

    def test_future_date_of_birth_leaves_age_unknown(self, good_night):
        """Test a birth date after the reference date is not passed on as an age."""
        profile = UserProfile(date_of_birth=date(2030, 1, 1))

        data = SleepPredictionService().build_prediction_input(good_night, profile, today=TODAY)

        assert data.age is None
        assert data.vo2max == PhysiologyEstimator().estimate(UserProfile(), TODAY).vo2max

    @pytest.mark.parametrize("with_stages", [True, False])
    def test_repeated_calls_serialise_identically(
        self, good_night, profile, history_14d, now, with_stages
    ):
        """Test the same input and reference time give byte-identical bundles."""
        record = good_night
        if not with_stages:
            record = good_night.model_copy(
                update={
                    "deep_minutes": None,
                    "rem_minutes": None,
                    "light_minutes": None,
                    "awake_minutes": None,
                }
            )
        service = SleepPredictionService()
        data = service.build_prediction_input(record, profile, history_14d, today=TODAY)

        first = service.build_premium_prediction(data, now)
        second = SleepPredictionService().build_premium_prediction(data, now)

        assert first.model_dump_json() == second.model_dump_json()

