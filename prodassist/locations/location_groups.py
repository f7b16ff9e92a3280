"""
Arc location groups.

Builds deduplicated location groups from episode breakdowns, normalizes
generated location documents, and applies the user edits that affect cost
(suggestion selection, status changes, cost edits). Every edit returns a new
locations document with the cost rollup recomputed from scratch.
"""

import re
import time
from collections import Counter
from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import Any, Dict, List, Mapping, Optional

from prodassist.core.constants import LOCATION_STATUSES
from prodassist.core.exceptions import (
    InvalidSelectionError,
    InvalidStatusError,
    LocationGroupNotFoundError,
)
from prodassist.core.logging_config import get_logger
from prodassist.aggregation.breakdown import breakdown_scenes, full_script
from prodassist.aggregation.normalizers import as_dict, as_list, sorted_episodes
from prodassist.locations.cost_rollup import compute_cost_rollup

logger = get_logger("locations.groups")

SCENE_HEADING = re.compile(
    r"^\s*(INT\./EXT\.|INT/EXT\.|INT\.|EXT\.)\s+(.+?)"
    r"(?:\s+-\s+(DAY|NIGHT|MORNING|AFTERNOON|EVENING|DAWN|DUSK|CONTINUOUS|LATER))?\s*$",
    re.MULTILINE,
)
HEADING_PREFIX = re.compile(r"^(INT\./EXT\.|INT/EXT\.|INT\.|EXT\.)\s*", re.IGNORECASE)
PARENT_CHILD = re.compile(r"^(.+?)\s+-\s+(.+)$")

# Story bible names scoring below this are not linked to a group
STORY_BIBLE_MATCH_THRESHOLD = 0.5


@dataclass
class SceneLocation:
    """A location reference taken from one scene."""
    name: str
    full_name: str
    type: str
    episode_number: int
    scene_number: Any
    time_of_day: Optional[str] = None

    @property
    def parent_name(self) -> str:
        match = PARENT_CHILD.match(self.name)
        return match.group(1).strip() if match else self.name.strip()

    @property
    def sub_location_name(self) -> str:
        match = PARENT_CHILD.match(self.name)
        return match.group(2).strip() if match else ""


def normalize_location_name(name: str) -> str:
    return " ".join(str(name or "").split()).lower()


def _location_type(text: str) -> str:
    upper = text.upper()
    interior = "INT" in upper or "INTERIOR" in upper
    exterior = "EXT" in upper or "EXTERIOR" in upper
    if interior and exterior:
        return "both"
    if exterior:
        return "exterior"
    return "interior"


def _from_script(script: str, episode_number: int) -> List[SceneLocation]:
    locations = []
    for scene_number, match in enumerate(SCENE_HEADING.finditer(script), start=1):
        name = match.group(2).strip()
        if not name:
            continue
        locations.append(SceneLocation(
            name=name,
            full_name=name,
            type=_location_type(match.group(1)),
            episode_number=episode_number,
            scene_number=scene_number,
            time_of_day=(match.group(3) or "DAY").strip(),
        ))
    return locations


def extract_scene_locations(episode_data: Mapping[Any, Any]) -> List[SceneLocation]:
    """
    Pull location references out of every episode.

    Breakdown scenes are preferred; an episode's script headings are parsed
    only when its breakdown yields no locations.
    """
    locations: List[SceneLocation] = []

    for episode_number, doc in sorted_episodes(episode_data):
        from_breakdown = []
        for scene in breakdown_scenes(doc):
            text = scene.get("location")
            if not isinstance(text, str) or not text.strip():
                continue
            from_breakdown.append(SceneLocation(
                name=HEADING_PREFIX.sub("", text).strip(),
                full_name=text,
                type=_location_type(text),
                episode_number=episode_number,
                scene_number=scene.get("sceneNumber"),
                time_of_day=scene.get("timeOfDay"),
            ))

        if from_breakdown:
            locations.extend(from_breakdown)
            continue

        script = full_script(doc)
        if script:
            locations.extend(_from_script(script, episode_number))

    return locations


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", normalize_location_name(text)).strip("_") or "unnamed"


def _story_bible_reference(parent_name: str, story_bible: Optional[Dict[str, Any]]):
    candidates = as_list(as_dict(as_dict(story_bible).get("worldBuilding")).get("locations"))
    best_name, best_score = None, 0.0
    for candidate in candidates:
        name = candidate if isinstance(candidate, str) else as_dict(candidate).get("name") or as_dict(candidate).get("title")
        if not name:
            continue
        score = SequenceMatcher(None, normalize_location_name(parent_name), normalize_location_name(name)).ratio()
        if score > best_score:
            best_name, best_score = name, score
    if best_score < STORY_BIBLE_MATCH_THRESHOLD:
        return None, 0.0
    return best_name, round(best_score, 2)


def _build_group(key: str, locations: List[SceneLocation], story_bible) -> Dict[str, Any]:
    parent_name = Counter(loc.parent_name for loc in locations).most_common(1)[0][0]
    group_type = Counter(loc.type for loc in locations).most_common(1)[0][0]

    sub_locations: Dict[str, Dict[str, Any]] = {}
    usage: Dict[int, Dict[str, Any]] = {}

    for loc in locations:
        sub_name = loc.sub_location_name
        sub_key = _slug(sub_name) if sub_name else "main"
        sub = sub_locations.setdefault(sub_key, {
            "id": f"subloc_{key}_{sub_key}",
            "name": sub_name or parent_name,
            "fullName": f"{parent_name} - {sub_name}" if sub_name else parent_name,
            "type": loc.type,
            "sceneReferences": [],
            "totalScenes": 0,
        })
        sub["sceneReferences"].append({"episodeNumber": loc.episode_number, "sceneNumber": loc.scene_number})
        sub["totalScenes"] += 1

        episode = usage.setdefault(loc.episode_number, {
            "episodeNumber": loc.episode_number,
            "episodeTitle": f"Episode {loc.episode_number}",
            "sceneNumbers": [],
            "subLocationIds": [],
        })
        if loc.scene_number not in episode["sceneNumbers"]:
            episode["sceneNumbers"].append(loc.scene_number)
        if sub["id"] not in episode["subLocationIds"]:
            episode["subLocationIds"].append(sub["id"])

    episodes_used = sorted(usage)
    reference, confidence = _story_bible_reference(parent_name, story_bible)

    return {
        "id": f"locgroup_{key}",
        "parentLocationName": parent_name,
        "type": group_type,
        "subLocations": list(sub_locations.values()),
        "shootingLocationSuggestions": [],
        "selectedSuggestionId": None,
        "status": "scouted",
        "episodeUsage": [
            {**usage[number], "sceneCount": len(usage[number]["sceneNumbers"])}
            for number in episodes_used
        ],
        "totalScenes": len(locations),
        "totalEpisodes": len(episodes_used),
        "episodesUsed": episodes_used,
        "timeOfDay": sorted({loc.time_of_day for loc in locations if loc.time_of_day}),
        "firstUsedEpisode": episodes_used[0],
        "lastUsedEpisode": episodes_used[-1],
        "storyBibleReference": reference,
        "confidence": confidence,
    }


def build_location_groups(
    episode_data: Mapping[Any, Any],
    story_bible: Optional[Dict[str, Any]] = None
) -> List[Dict[str, Any]]:
    """
    Group scene locations across the arc by parent location.

    "Loft Apartment - Kitchen" and "Loft Apartment" land in the same group
    with "Kitchen" as a sub-location. Groups used in more episodes come first.
    """
    grouped: Dict[str, List[SceneLocation]] = {}
    for loc in extract_scene_locations(episode_data):
        grouped.setdefault(_slug(loc.parent_name), []).append(loc)

    groups = [_build_group(key, locs, story_bible) for key, locs in grouped.items()]
    groups.sort(key=lambda group: group["totalEpisodes"], reverse=True)
    logger.info(f"Built {len(groups)} location groups from {sum(len(v) for v in grouped.values())} scene references")
    return groups


# =============================================================================
# LOCATIONS DOCUMENT
# =============================================================================

def _suggestion_ids(group: Dict[str, Any]) -> List[Any]:
    return [s.get("id") for s in as_list(group.get("shootingLocationSuggestions")) if isinstance(s, dict)]


def with_rollup(locations: Dict[str, Any], groups: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Return the locations document with new groups and a freshly computed rollup."""
    return {
        **locations,
        "locationGroups": groups,
        "costRollup": compute_cost_rollup(groups).to_dict(),
        "lastUpdated": int(time.time() * 1000),
    }


def hydrate_locations(result: Any) -> Dict[str, Any]:
    """
    Normalize a generated or reloaded locations document.

    Accepts a document with locationGroups or a bare list of groups. Duplicate
    group ids get a numeric suffix, selections pointing at suggestions that no
    longer exist are cleared, and the rollup is recomputed.
    """
    if isinstance(result, list):
        locations: Dict[str, Any] = {"locationGroups": result}
    else:
        locations = dict(as_dict(result))

    raw_groups = as_list(locations.get("locationGroups"))
    used = {g.get("id") for g in raw_groups if isinstance(g, dict) and g.get("id")}
    assigned = set()
    groups = []
    for index, raw in enumerate(raw_groups):
        if not isinstance(raw, dict):
            continue
        group = dict(raw)
        base_id = group.get("id") or f"locgroup_{index + 1}"
        group_id, suffix = base_id, 1
        # Suffixed ids must not collide with ids the result already carries
        while group_id in assigned or (group_id != base_id and group_id in used):
            suffix += 1
            group_id = f"{base_id}-{suffix}"
        assigned.add(group_id)
        used.add(group_id)
        group["id"] = group_id

        selected = group.get("selectedSuggestionId")
        if selected is not None and selected not in _suggestion_ids(group):
            logger.warning(f"Clearing stale selection '{selected}' on location group {group['id']}")
            group["selectedSuggestionId"] = None
        groups.append(group)

    return with_rollup({**locations, "generated": locations.get("generated", True)}, groups)


def _replace_group(locations: Dict[str, Any], group_id: str, update) -> Dict[str, Any]:
    groups = [dict(g) for g in as_list(as_dict(locations).get("locationGroups")) if isinstance(g, dict)]
    for index, group in enumerate(groups):
        if group.get("id") == group_id:
            groups[index] = update(group)
            return with_rollup(dict(locations), groups)
    raise LocationGroupNotFoundError(group_id)


def select_suggestion(
    locations: Dict[str, Any],
    group_id: str,
    suggestion_id: Optional[str]
) -> Dict[str, Any]:
    """Select a shooting location suggestion for a group (None clears the selection)."""
    def update(group):
        if suggestion_id is not None and suggestion_id not in _suggestion_ids(group):
            raise InvalidSelectionError(group_id, suggestion_id)
        return {**group, "selectedSuggestionId": suggestion_id}

    return _replace_group(locations, group_id, update)


def update_group_status(locations: Dict[str, Any], group_id: str, status: str) -> Dict[str, Any]:
    """Change a group's booking status."""
    if status not in LOCATION_STATUSES:
        raise InvalidStatusError(status, list(LOCATION_STATUSES))
    return _replace_group(locations, group_id, lambda group: {**group, "status": status})


def update_cost_fields(
    locations: Dict[str, Any],
    group_id: str,
    costs: Dict[str, Any],
    suggestion_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    Edit cost fields of a suggestion's costBreakdown, or of the group's
    costEstimate when no suggestion id is given.
    """
    def update(group):
        if suggestion_id is None:
            return {**group, "costEstimate": {**as_dict(group.get("costEstimate")), **costs}}
        if suggestion_id not in _suggestion_ids(group):
            raise InvalidSelectionError(group_id, suggestion_id)
        suggestions = []
        for suggestion in as_list(group.get("shootingLocationSuggestions")):
            if isinstance(suggestion, dict) and suggestion.get("id") == suggestion_id:
                suggestion = {
                    **suggestion,
                    "costBreakdown": {**as_dict(suggestion.get("costBreakdown")), **costs},
                }
            suggestions.append(suggestion)
        return {**group, "shootingLocationSuggestions": suggestions}

    return _replace_group(locations, group_id, update)
