"""Unit tests for distance normalisation and display formatting."""

import logging
import math

import pytest

from src.domain.enums import DistanceUnit
from src.domain.errors import InvalidDistance
from src.domain.units import (
    format_distance,
    format_duration,
    normalize_distance,
    parse_unit,
)


class TestExplicitUnit:
    def test_meters_are_converted(self):
        assert normalize_distance(390000, DistanceUnit.METERS) == 390.0

    def test_short_meter_distance_is_not_misread(self):
        # the heuristic alone would call this 900 km
        assert normalize_distance(900, DistanceUnit.METERS) == 0.9

    def test_kilometers_pass_through(self):
        assert normalize_distance(1500, DistanceUnit.KILOMETERS) == 1500

    def test_explicit_unit_does_not_warn(self, caplog):
        with caplog.at_level(logging.WARNING, logger="src.domain.units"):
            normalize_distance(12.5, DistanceUnit.KILOMETERS)
        assert caplog.records == []


class TestHeuristic:
    def test_large_value_is_meters(self):
        assert normalize_distance(390000) == 390.0

    def test_small_value_is_kilometers(self):
        assert normalize_distance(25.3) == 25.3

    def test_threshold_itself_is_kilometers(self):
        assert normalize_distance(1000) == 1000

    def test_just_above_threshold_is_meters(self):
        assert normalize_distance(1001) == pytest.approx(1.001)

    def test_heuristic_decision_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="src.domain.units"):
            normalize_distance(390000)
        assert any("meters" in r.getMessage() for r in caplog.records)

    def test_custom_threshold(self):
        assert normalize_distance(600, threshold=500) == 0.6


class TestInvalid:
    @pytest.mark.parametrize("raw", [0, -5, -390000])
    def test_non_positive_raises(self, raw):
        with pytest.raises(InvalidDistance, match="must be positive"):
            normalize_distance(raw)

    def test_not_a_number_raises(self):
        with pytest.raises(InvalidDistance):
            normalize_distance("far")

    def test_nan_raises(self):
        with pytest.raises(InvalidDistance):
            normalize_distance(math.nan)

    def test_zero_meters_raises(self):
        with pytest.raises(InvalidDistance):
            normalize_distance(0, DistanceUnit.METERS)

    def test_not_retryable(self):
        with pytest.raises(InvalidDistance) as exc_info:
            normalize_distance(0)
        assert exc_info.value.retryable is False


class TestParseUnit:
    def test_known_tags(self):
        assert parse_unit("m") is DistanceUnit.METERS
        assert parse_unit(" Meters ") is DistanceUnit.METERS
        assert parse_unit("KM") is DistanceUnit.KILOMETERS

    def test_unknown_or_missing_tag(self):
        assert parse_unit("furlongs") is None
        assert parse_unit(None) is None
        assert parse_unit("") is None


class TestFormatting:
    def test_format_distance(self):
        assert format_distance(12.3456) == "12.35 km"
        assert format_distance(390.0) == "390.00 km"

    def test_format_distance_missing(self):
        assert format_distance(None) == "0.00 km"

    def test_format_duration_hours(self):
        assert format_duration(3900) == "1 h 5 min"

    def test_format_duration_minutes(self):
        assert format_duration(2520) == "42 min"

    def test_format_duration_missing(self):
        assert format_duration(0) == "0 min"
        assert format_duration(None) == "0 min"
