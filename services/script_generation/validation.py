"""Content checks applied to every generated script."""

import re

from shared.models import ScriptValidation
from shared.utils import config

from .prompts import estimate_duration

INAPPROPRIATE_PATTERNS = (
    re.compile(r"\b(scandal|controversy|arrest|lawsuit)\b", re.IGNORECASE),
    re.compile(r"\b(allegedly|rumor|unconfirmed)\b", re.IGNORECASE),
    re.compile(r"\b(hate|discrimination|offensive)\b", re.IGNORECASE),
)


def validate_script(script: str) -> ScriptValidation:
    """Check word-count bounds and flag inappropriate content markers."""
    min_words = int(config.get_pipeline_value("script.min_words", 20))
    max_words = int(config.get_pipeline_value("script.max_words", 300))

    issues: list[str] = []
    word_count = len(script.split())

    if word_count < min_words:
        issues.append(f"Script is too short (minimum {min_words} words)")
    if word_count > max_words:
        issues.append(f"Script is too long (maximum {max_words} words)")

    for index, pattern in enumerate(INAPPROPRIATE_PATTERNS, 1):
        if pattern.search(script):
            issues.append(f"Content may contain inappropriate material (pattern {index})")

    if config.get_pipeline_value("script.require_delivery_markers", False):
        if "*" not in script and "[PAUSE]" not in script:
            issues.append("Script lacks emphasis markers or pause indicators")

    return ScriptValidation(
        valid=not issues,
        issues=issues,
        word_count=word_count,
        estimated_duration=estimate_duration(word_count),
    )
