"""
Arc aggregators for casting, equipment and permits.

Each aggregator folds a mapping of episode number -> episode document into one
arc-level summary shaped like the per-episode sub-document. Episodes are
visited in ascending episode order. The first appearance of a record becomes
the base record; later appearances merge into it (see each function for the
per-field policy). Missing or malformed sub-documents contribute nothing.
"""

import time
from typing import Any, Dict, List, Mapping, Optional

from prodassist.core.constants import EQUIPMENT_CATEGORIES, OBTAINED_EQUIPMENT_STATUSES
from prodassist.core.logging_config import get_logger
from prodassist.aggregation.normalizers import (
    as_dict,
    as_list,
    as_number,
    join_notes,
    normalize_equipment,
    normalize_key,
    sorted_episodes,
)

logger = get_logger("aggregation.aggregators")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _track_episode(record: Dict[str, Any], episode_number: int) -> List[int]:
    episodes = list(record.get("episodesUsed") or [])
    if episode_number not in episodes:
        episodes.append(episode_number)
    return episodes


def cast_member_key(member: Dict[str, Any]) -> str:
    """Identity of a cast member: character name, else name, else id."""
    identity = member.get("characterName") or member.get("name") or member.get("id") or ""
    return normalize_key(identity)


def aggregate_casting(
    episode_data: Mapping[Any, Any],
    timestamp: Optional[int] = None
) -> Dict[str, Any]:
    """
    Union cast members across episodes.

    Merge policy for a character seen in several episodes:
    - base record (role, actor, rates) comes from the lowest episode
    - scenes are unioned, totalShootDays takes the maximum
    - status follows the latest episode that sets one
    - confirmed is true if any episode confirmed the member
    - notes and actorNotes are joined with " | "
    """
    cast_map: Dict[str, Dict[str, Any]] = {}

    for episode_number, doc in sorted_episodes(episode_data):
        for member in as_list(as_dict(doc.get("casting")).get("cast")):
            if not isinstance(member, dict):
                continue
            key = cast_member_key(member)
            if not key:
                logger.debug(f"Episode {episode_number}: skipping cast entry without a name")
                continue

            existing = cast_map.get(key)
            if existing is None:
                cast_map[key] = {
                    **member,
                    "episodesUsed": [episode_number],
                    "originalEpisode": episode_number,
                }
                continue

            scenes = list(as_list(existing.get("scenes")))
            for scene in as_list(member.get("scenes")):
                if scene not in scenes:
                    scenes.append(scene)

            cast_map[key] = {
                **existing,
                "scenes": scenes,
                "totalShootDays": max(
                    as_number(existing.get("totalShootDays")),
                    as_number(member.get("totalShootDays")),
                ),
                "episodesUsed": _track_episode(existing, episode_number),
                "status": member.get("status") or existing.get("status"),
                "confirmed": bool(existing.get("confirmed") or member.get("confirmed")),
                "notes": join_notes(existing.get("notes"), member.get("notes")),
                "actorNotes": join_notes(existing.get("actorNotes"), member.get("actorNotes")),
            }

    cast = list(cast_map.values())
    total_confirmed = sum(1 for member in cast if member.get("confirmed"))

    logger.debug(f"Aggregated {len(cast)} cast members")

    return {
        "cast": cast,
        "totalConfirmed": total_confirmed,
        "totalPending": len(cast) - total_confirmed,
        "leads": sum(1 for member in cast if member.get("role") == "lead"),
        "supporting": sum(1 for member in cast if member.get("role") == "supporting"),
        "lastUpdated": timestamp if timestamp is not None else _now_ms(),
        "updatedBy": "",
    }


def aggregate_equipment(
    episode_data: Mapping[Any, Any],
    timestamp: Optional[int] = None
) -> Dict[str, Any]:
    """
    Union equipment items across episodes.

    Items are keyed by name and category. Quantities add up (an item without a
    quantity counts as one), totalCost keeps the highest value seen and notes
    are joined. Both the categorized and the flat items[] schemas are read.
    """
    equipment_map: Dict[str, Dict[str, Any]] = {}

    for episode_number, doc in sorted_episodes(episode_data):
        for item in normalize_equipment(doc.get("equipment")):
            key = normalize_key(item.get("name"), item["category"])
            existing = equipment_map.get(key)

            if existing is None:
                equipment_map[key] = {
                    **item,
                    "quantity": as_number(item.get("quantity"), 1),
                    "episodesUsed": [episode_number],
                    "originalEpisode": episode_number,
                }
                continue

            equipment_map[key] = {
                **existing,
                "quantity": as_number(existing.get("quantity")) + as_number(item.get("quantity"), 1),
                "totalCost": max(
                    as_number(existing.get("totalCost")),
                    as_number(item.get("totalCost")),
                ),
                "episodesUsed": _track_episode(existing, episode_number),
                "notes": join_notes(existing.get("notes"), item.get("notes")),
            }

    items = list(equipment_map.values())
    result: Dict[str, Any] = {category: [] for category in EQUIPMENT_CATEGORIES}
    for item in items:
        result[item["category"]].append(item)

    logger.debug(f"Aggregated {len(items)} equipment items")

    result.update({
        "episodeNumber": 0,
        "episodeTitle": "",
        "totalItems": len(items),
        "obtainedItems": sum(
            1 for item in items if item.get("status") in OBTAINED_EQUIPMENT_STATUSES
        ),
        "totalCost": sum(as_number(item.get("totalCost")) for item in items),
        "lastUpdated": timestamp if timestamp is not None else _now_ms(),
        "updatedBy": "",
    })
    return result


def permit_key(permit: Dict[str, Any]) -> str:
    """Identity of a permit: name, type and location."""
    return normalize_key(permit.get("name"), permit.get("type"), permit.get("location"))


def aggregate_permits(
    episode_data: Mapping[Any, Any],
    timestamp: Optional[int] = None
) -> Dict[str, Any]:
    """
    Union permits across episodes.

    Permits with the same name, type and location merge: cost keeps the highest
    value, status follows the latest episode that sets one, notes are joined.
    """
    permits_map: Dict[str, Dict[str, Any]] = {}

    for episode_number, doc in sorted_episodes(episode_data):
        for permit in as_list(as_dict(doc.get("permits")).get("permits")):
            if not isinstance(permit, dict):
                continue
            key = permit_key(permit)
            existing = permits_map.get(key)

            if existing is None:
                permits_map[key] = {
                    **permit,
                    "episodesUsed": [episode_number],
                    "originalEpisode": episode_number,
                }
                continue

            permits_map[key] = {
                **existing,
                "cost": max(as_number(existing.get("cost")), as_number(permit.get("cost"))),
                "status": permit.get("status") or existing.get("status"),
                "episodesUsed": _track_episode(existing, episode_number),
                "notes": join_notes(existing.get("notes"), permit.get("notes")),
            }

    permits = list(permits_map.values())
    logger.debug(f"Aggregated {len(permits)} permits")

    return {
        "permits": permits,
        "checklist": [],
        "lastUpdated": timestamp if timestamp is not None else _now_ms(),
    }
