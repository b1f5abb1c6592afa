"""Tests for physiology estimation."""

from datetime import date

import pytest

from sleep_engine.schemas.sleep import ActivityLevel, Sex, UserProfile
from sleep_engine.services.physiology import PhysiologyEstimator, resolve_plausible_age


class TestPhysiologyEstimator:
    """Tests for PhysiologyEstimator."""

    def test_active_young_man(self, profile):
        """Test estimates for an active 30-year-old man."""
        result = PhysiologyEstimator().estimate(profile, date(2026, 2, 1))

        assert result.vo2max == pytest.approx(52.3)
        assert result.hr_max == pytest.approx(186.0)
        assert result.resting_hr == pytest.approx(46.9)
        assert result.hrv_rmssd == pytest.approx(40.8)
        assert result.respiratory_rate == pytest.approx(13.1)
        assert result.basis_notes == ["age=30", "activity=active", "sex=male"]

    def test_sedentary_older_woman(self):
        """Test estimates for a sedentary 60-year-old woman."""
        profile = UserProfile(age=60, sex=Sex.FEMALE, activity_level=ActivityLevel.SEDENTARY)

        result = PhysiologyEstimator().estimate(profile, date(2026, 2, 1))

        assert result.vo2max == pytest.approx(27.4)
        assert result.resting_hr == pytest.approx(69.4)
        assert result.hrv_rmssd == pytest.approx(22.0, abs=0.1)

    def test_date_of_birth_wins_over_age(self):
        """Test the date of birth is used for age when both are present."""
        profile = UserProfile(age=70, date_of_birth=date(1996, 6, 15))

        result = PhysiologyEstimator().estimate(profile, date(2026, 6, 14))

        assert "age=29" in result.basis_notes

    def test_missing_profile_records_assumptions(self):
        """Test an empty profile falls back to documented defaults."""
        result = PhysiologyEstimator().estimate(UserProfile(), date(2026, 2, 1))

        assert "assumed_age=35" in result.basis_notes
        assert "assumed_activity=moderate" in result.basis_notes
        assert "assumed_sex=average" in result.basis_notes

    @pytest.mark.parametrize("age", [0, -4, 150])
    def test_implausible_age_is_replaced(self, age):
        """Test out-of-range ages are treated as missing."""
        result = PhysiologyEstimator().estimate(UserProfile(age=age), date(2026, 2, 1))

        assert "age=35" in result.basis_notes

    @pytest.mark.parametrize("activity", list(ActivityLevel))
    @pytest.mark.parametrize("age", [16, 40, 95])
    def test_estimates_stay_in_plausible_ranges(self, activity, age):
        """Test every estimate is clamped to its physiological range."""
        profile = UserProfile(age=age, activity_level=activity)

        result = PhysiologyEstimator().estimate(profile, date(2026, 2, 1))

        assert 10 <= result.vo2max <= 80
        assert 38 <= result.resting_hr <= 90
        assert 12 <= result.hrv_rmssd <= 80
        assert 12 <= result.respiratory_rate <= 17

    def test_fitter_users_have_lower_resting_hr(self):
        """Test resting HR falls as activity level rises."""
        estimator = PhysiologyEstimator()
        sedentary = estimator.estimate(
            UserProfile(age=40, activity_level=ActivityLevel.SEDENTARY), date(2026, 2, 1)
        )
        very_active = estimator.estimate(
            UserProfile(age=40, activity_level=ActivityLevel.VERY_ACTIVE), date(2026, 2, 1)
        )

        assert very_active.resting_hr < sedentary.resting_hr
        assert very_active.hrv_rmssd > sedentary.hrv_rmssd


class TestResolvePlausibleAge:
    """Tests for resolve_plausible_age."""

    def test_plausible_age_is_kept(self):
        """Test a valid age is returned without the assumed marker."""
        assert resolve_plausible_age(UserProfile(age=42), date(2026, 2, 1)) == (42, False)

    def test_future_date_of_birth_falls_back(self):
        """Test a birth date after the reference date uses the default age."""
        profile = UserProfile(date_of_birth=date(2030, 1, 1))

        assert resolve_plausible_age(profile, date(2026, 2, 1)) == (35, True)

    def test_missing_age_falls_back(self):
        """Test an empty profile uses the default age."""
        assert resolve_plausible_age(UserProfile(), date(2026, 2, 1)) == (35, True)

    def test_estimator_notes_future_birth_date(self):
        """Test the estimator records the assumption for a future birth date."""
        profile = UserProfile(date_of_birth=date(2030, 1, 1))

        result = PhysiologyEstimator().estimate(profile, date(2026, 2, 1))

        assert "age=35" in result.basis_notes
        assert "assumed_age=35" in result.basis_notes
