"""Message catalogue for ledger notices.

Loads notice templates from notices.json once at import time.
Provides a single t(key, **kwargs) function for lookup with dot-notation keys.

Usage:
    from src.services.localizer import t

    text = t("notices.tuition_payment", name="Amina", amount="$40.00", ...)
"""

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Load templates once at import time
_CATALOGUE_PATH = Path(__file__).parent.parent / "static" / "notices.json"
_CATALOGUE: dict[str, Any] = {}

try:
    with open(_CATALOGUE_PATH, encoding="utf-8") as f:
        _CATALOGUE = json.load(f)
except (FileNotFoundError, json.JSONDecodeError) as e:
    logger.error("Failed to load notice templates from %s: %s", _CATALOGUE_PATH, e)


def t(key: str, **kwargs: Any) -> str:
    """Get template for a key with optional placeholder substitution.

    Args:
        key: Dot-notation key (e.g., "notices.tuition_payment")
        **kwargs: Placeholder values for string formatting

    Returns:
        Template with placeholders replaced, or the key itself if not found.
    """
    parts = key.split(".")
    value: Any = _CATALOGUE

    for part in parts:
        if isinstance(value, dict) and part in value:
            value = value[part]
        else:
            logger.warning("Notice template not found: %s", key)
            return key

    if not isinstance(value, str):
        logger.warning("Notice template is not a string for key: %s", key)
        return key

    if kwargs:
        try:
            return value.format(**kwargs)
        except KeyError as e:
            logger.warning("Missing placeholder %s for key: %s", e, key)
            return value

    return value


__all__ = ["t"]
