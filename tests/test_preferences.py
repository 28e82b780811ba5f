from types import SimpleNamespace

import pytest
from pydantic import ValidationError

from loadmatch.schemas.matching import MatchingPreferences


def _row(**kwargs):
    defaults = dict(
        min_profit_per_mile=None,
        max_deadhead_miles=None,
        min_match_score=None,
        preferred_return_states=None,
        excluded_states=None,
        min_capacity_utilization_percent=None,
        max_capacity_utilization_percent=None,
    )
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


class TestDefaults:
    def test_no_row_gives_defaults(self):
        prefs = MatchingPreferences.from_settings(None)
        assert prefs.min_profit_per_mile == 1.0
        assert prefs.max_deadhead_miles == 150.0
        assert prefs.min_match_score == 50.0
        assert prefs.min_capacity_utilization == 30.0
        assert prefs.max_capacity_utilization == 100.0
        assert prefs.preferred_return_states == frozenset()
        assert prefs.excluded_states == frozenset()

    def test_null_columns_fall_back_per_field(self):
        prefs = MatchingPreferences.from_settings(_row(max_deadhead_miles=250))
        assert prefs.max_deadhead_miles == 250.0
        assert prefs.min_profit_per_mile == 1.0
        assert prefs.min_capacity_utilization == 30.0


class TestNormalization:
    def test_state_lists_are_uppercased_sets(self):
        prefs = MatchingPreferences.from_settings(
            _row(preferred_return_states=["co", " ut", "CO"], excluded_states="ny, nj")
        )
        assert prefs.preferred_return_states == frozenset({"CO", "UT"})
        assert prefs.excluded_states == frozenset({"NY", "NJ"})

    def test_state_names_become_codes(self):
        prefs = MatchingPreferences(preferred_return_states=["Utah", " new mexico "], excluded_states=["Nebraska", ""])
        assert prefs.preferred_return_states == frozenset({"UT", "NM"})
        assert prefs.excluded_states == frozenset({"NE"})

    def test_negative_values_clamped(self):
        prefs = MatchingPreferences(min_profit_per_mile=-2, max_deadhead_miles=-10)
        assert prefs.min_profit_per_mile == 0.0
        assert prefs.max_deadhead_miles == 0.0

    def test_percentages_clamped_to_range(self):
        prefs = MatchingPreferences(min_match_score=140, min_capacity_utilization=-5, max_capacity_utilization=180)
        assert prefs.min_match_score == 100.0
        assert prefs.min_capacity_utilization == 0.0
        assert prefs.max_capacity_utilization == 100.0

    def test_inverted_capacity_bounds_collapse_to_max(self):
        prefs = MatchingPreferences(min_capacity_utilization=80, max_capacity_utilization=60)
        assert prefs.min_capacity_utilization == 60.0
        assert prefs.max_capacity_utilization == 60.0


class TestImmutability:
    def test_frozen(self):
        prefs = MatchingPreferences()
        with pytest.raises(ValidationError):
            prefs.min_match_score = 10
