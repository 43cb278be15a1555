"""
Input validation utilities
"""
import re
from typing import Iterable, List, Optional

from config import settings


def validate_frequency(frequency: str) -> bool:
    """Validate an alert frequency"""
    return frequency in settings.ALERT_FREQUENCIES


def known_channels(channels: Optional[Iterable[str]]) -> List[str]:
    """
    Keep only channel tokens this engine can deliver to, preserving order.
    Unknown tokens are dropped silently so rules can list channels that are not built yet.
    """
    if not channels:
        return []
    seen = []
    for channel in channels:
        token = str(channel).strip().lower()
        if token in settings.NOTIFICATION_CHANNELS and token not in seen:
            seen.append(token)
    return seen


def validate_confidence(confidence: float) -> bool:
    """Confidence scores live in [0, 1]"""
    try:
        return 0.0 <= float(confidence) <= 1.0
    except (ValueError, TypeError):
        return False


def is_email_address(value: str) -> bool:
    """Loose email check used for PM credential validation"""
    if not value:
        return False
    return bool(re.match(r'^[^@\s]+@[^@\s]+$', str(value)))
