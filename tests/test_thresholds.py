"""
Tests for engine.thresholds.
"""
import pytest

from engine.thresholds import evaluate, is_actionable
from models.kpi import ThresholdBands


@pytest.mark.parametrize("value,expected", [
    (80, "red"),
    (92, "red"),  # under red_min already, yellow_min is never reached
    (97, "green"),
])
def test_red_min_above_yellow_min(value, expected):
    bands = ThresholdBands(red_min=95, yellow_min=90)
    assert evaluate(value, bands) == expected


def test_red_checked_before_yellow():
    bands = ThresholdBands(red_min=85, yellow_min=92)
    assert evaluate(80, bands) == "red"
    assert evaluate(90, bands) == "yellow"
    assert evaluate(95, bands) == "green"


def test_upper_bounds():
    bands = ThresholdBands(red_max=10, yellow_max=8)
    assert evaluate(12, bands) == "red"
    assert evaluate(9, bands) == "yellow"
    assert evaluate(7, bands) == "green"


def test_boundary_value_does_not_trigger():
    bands = ThresholdBands(red_min=90)
    assert evaluate(90, bands) == "green"
    assert evaluate(89.99, bands) == "red"


def test_boundary_falls_through_to_yellow():
    bands = ThresholdBands(red_min=90, yellow_max=85)
    assert evaluate(90, bands) == "yellow"


def test_no_bounds_is_green():
    assert evaluate(-1000, ThresholdBands()) == "green"


def test_green_bounds_are_ignored():
    bands = ThresholdBands(green_min=50, green_max=60)
    assert evaluate(10, bands) == "green"


def test_is_actionable():
    assert is_actionable("red")
    assert is_actionable("yellow")
    assert not is_actionable("green")
