"""Requirement predicates for achievement rules.

A rule's ``requirements`` maps a statistic name to one condition:
``{"minimum": n}``, ``{"maximum": n}``, ``{"equals": v}`` or ``{"required": v}``.
A bare number is shorthand for ``{"minimum": n}``. Every entry must hold.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

logger = logging.getLogger("notification_core.achievements")


def condition_met(value: Any, condition: Any) -> bool:
    if isinstance(condition, (int, float)) and not isinstance(condition, bool):
        condition = {"minimum": condition}
    if not isinstance(condition, Mapping):
        logger.warning("Unknown requirement format: %r", condition)
        return False
    if "required" in condition:
        return value == condition["required"]
    if "minimum" in condition:
        return value is not None and value >= condition["minimum"]
    if "maximum" in condition:
        return value is not None and value <= condition["maximum"]
    if "equals" in condition:
        return value == condition["equals"]
    logger.warning("Unknown requirement format: %r", condition)
    return False


def requirements_met(requirements: Mapping[str, Any], stats: Mapping[str, Any]) -> bool:
    """True when every requirement holds; an empty or unknown stat never passes."""
    if not requirements:
        return False
    for key, condition in requirements.items():
        if key not in stats:
            logger.warning("Achievement requirement references unknown statistic %r", key)
            return False
        if not condition_met(stats[key], condition):
            return False
    return True


def requirement_progress(requirements: Mapping[str, Any], stats: Mapping[str, Any]) -> Dict[str, Any]:
    """Per-requirement and overall completion percentages."""
    details: Dict[str, Dict[str, Any]] = {}
    total = 0.0
    for key, condition in (requirements or {}).items():
        value = stats.get(key) or 0
        if isinstance(condition, (int, float)) and not isinstance(condition, bool):
            condition = {"minimum": condition}
        if isinstance(condition, Mapping) and "minimum" in condition and condition["minimum"]:
            percent = min(float(value) / float(condition["minimum"]) * 100.0, 100.0)
            target = condition["minimum"]
        else:
            percent = 100.0 if condition_met(stats.get(key), condition) else 0.0
            target = condition
        details[key] = {"current": stats.get(key), "required": target, "progress": round(percent)}
        total += percent
    overall = round(total / len(details)) if details else 0
    return {"overall": overall, "requirements": details}


__all__ = ["condition_met", "requirement_progress", "requirements_met"]
