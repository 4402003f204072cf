"""
Filename validation used to enrich failure remarks.

Validation never gates tracking; it only explains why a file may have been
rejected by the downstream processor.
"""

import logging
import re
from pathlib import PurePath
from typing import List

from .models import TrackerConfig

logger = logging.getLogger(__name__)


def validate_filename(name: str, config: TrackerConfig) -> List[str]:
    """
    Return human-readable validation errors for a file name.

    Checks the monitored extension list and, when configured, the filename
    pattern, which must match the whole name without its extension.
    """
    errors = []
    path = PurePath(name)
    ext = path.suffix.lower()

    if config.monitored_extensions and not config.accepts_extension(name):
        errors.append(f"Invalid extension: {ext or '(none)'}")

    if config.filename_pattern:
        try:
            pattern = re.compile(config.filename_pattern)
        except re.error as e:
            logger.warning(f"Ignoring invalid filename pattern {config.filename_pattern!r}: {e}")
        else:
            if not pattern.fullmatch(path.stem):
                errors.append("Invalid filename format.")

    return errors


def failure_remark(name: str, config: TrackerConfig) -> str:
    """Validation errors if any, otherwise the configured generic remark."""
    errors = validate_filename(name, config)
    if errors:
        return "; ".join(errors)
    return config.failure_remark
