"""
Arc completeness checks and the aggregation decision.

These decide which arc sections still need data. Aggregation only fills
sections that are empty at arc level, one section at a time, and full
auto-generation is reserved for arcs where all eight sections are empty.
"""

from typing import Any, Callable, Dict, Mapping

from prodassist.core.constants import ArcSection, LEGACY_MARKETING_KEY, META_KEYS
from prodassist.core.logging_config import get_logger
from prodassist.aggregation.aggregators import (
    aggregate_casting,
    aggregate_equipment,
    aggregate_permits,
)
from prodassist.aggregation.normalizers import as_dict, as_list, equipment_item_count

logger = get_logger("aggregation.completeness")


def _has_content(value: Any) -> bool:
    """True when a free-form section carries anything beyond bookkeeping keys."""
    if isinstance(value, dict):
        return any(
            _has_content(item) for key, item in value.items() if key not in META_KEYS
        )
    if isinstance(value, list):
        return len(value) > 0
    if isinstance(value, str):
        return bool(value.strip())
    return False


def has_casting(arc: Mapping[str, Any]) -> bool:
    return len(as_list(as_dict(arc.get("casting")).get("cast"))) > 0


def has_schedule(arc: Mapping[str, Any]) -> bool:
    return len(as_list(as_dict(arc.get("shootingSchedule")).get("days"))) > 0


def has_locations(arc: Mapping[str, Any]) -> bool:
    locations = as_dict(arc.get("locations"))
    return bool(as_list(locations.get("locationGroups")) or as_list(locations.get("locations")))


def has_permits(arc: Mapping[str, Any]) -> bool:
    return len(as_list(as_dict(arc.get("permits")).get("permits"))) > 0


def has_budget(arc: Mapping[str, Any]) -> bool:
    return _has_content(arc.get("budget"))


def has_equipment(arc: Mapping[str, Any]) -> bool:
    return equipment_item_count(arc.get("equipment")) > 0


def has_props(arc: Mapping[str, Any]) -> bool:
    return _has_content(arc.get("propsWardrobe"))


def has_marketing(arc: Mapping[str, Any]) -> bool:
    return _has_content(arc.get("marketing")) or _has_content(arc.get(LEGACY_MARKETING_KEY))


SECTION_CHECKS: Dict[ArcSection, Callable[[Mapping[str, Any]], bool]] = {
    ArcSection.CASTING: has_casting,
    ArcSection.SCHEDULE: has_schedule,
    ArcSection.LOCATIONS: has_locations,
    ArcSection.PERMITS: has_permits,
    ArcSection.BUDGET: has_budget,
    ArcSection.EQUIPMENT: has_equipment,
    ArcSection.PROPS: has_props,
    ArcSection.MARKETING: has_marketing,
}


def section_status(arc: Mapping[str, Any]) -> Dict[str, bool]:
    """Map each tracked section name to whether it holds data."""
    arc = arc or {}
    return {section.value: check(arc) for section, check in SECTION_CHECKS.items()}


def is_arc_empty(arc: Mapping[str, Any]) -> bool:
    """True only when none of the eight tracked sections holds data."""
    return not any(section_status(arc).values())


def needs_aggregation(arc: Mapping[str, Any]) -> bool:
    """True when any aggregatable section (casting, equipment, permits) is empty."""
    arc = arc or {}
    return not (has_casting(arc) and has_equipment(arc) and has_permits(arc))


def plan_aggregation(
    arc: Mapping[str, Any],
    episode_data: Mapping[Any, Any],
    force: bool = False
) -> Dict[str, Any]:
    """
    Work out which arc sections aggregation should write.

    Each of casting, equipment and permits is considered on its own: it is
    aggregated only if the arc section is empty (or force is set) and the
    aggregate itself is non-empty. Returns a mapping of document key to data,
    ready for a multi-section update; an empty mapping means nothing to write.
    """
    arc = arc or {}
    updates: Dict[str, Any] = {}

    if force or not has_casting(arc):
        casting = aggregate_casting(episode_data)
        if casting["cast"]:
            updates["casting"] = casting

    if force or not has_equipment(arc):
        equipment = aggregate_equipment(episode_data)
        if equipment["totalItems"] > 0:
            updates["equipment"] = equipment

    if force or not has_permits(arc):
        permits = aggregate_permits(episode_data)
        if permits["permits"]:
            updates["permits"] = permits

    if updates:
        logger.info(f"Aggregation will fill: {', '.join(sorted(updates))}")
    return updates
