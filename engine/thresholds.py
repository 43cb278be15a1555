"""
Threshold evaluator - maps a KPI value onto the green/yellow/red severity model
"""
from models.kpi import ThresholdBands
from config import settings


def evaluate(value: float, bands: ThresholdBands) -> str:
    """
    Severity for a value against a rule's bands.

    Red bands are checked before yellow bands and the first match wins. Comparisons
    are strict, so a value sitting exactly on a bound does not trigger that bound.
    A bound that is not set never triggers.
    """
    if bands.red_min is not None and value < bands.red_min:
        return settings.LEVEL_RED
    if bands.red_max is not None and value > bands.red_max:
        return settings.LEVEL_RED

    if bands.yellow_min is not None and value < bands.yellow_min:
        return settings.LEVEL_YELLOW
    if bands.yellow_max is not None and value > bands.yellow_max:
        return settings.LEVEL_YELLOW

    return settings.LEVEL_GREEN


def is_actionable(level: str) -> bool:
    """Only yellow and red produce alerts"""
    return level in (settings.LEVEL_YELLOW, settings.LEVEL_RED)
