"""
Episode payload normalization.

Episode documents come in several historical shapes. Everything the
aggregators read passes through these helpers first, so business logic
only ever sees lists, dicts and integer episode numbers.
"""

from typing import Any, Dict, List, Mapping, Tuple

from prodassist.core.constants import EQUIPMENT_CATEGORIES, NOTE_SEPARATOR
from prodassist.core.logging_config import get_logger

logger = get_logger("aggregation.normalizers")


def as_dict(value: Any) -> Dict[str, Any]:
    """Return value if it is a dict, else an empty dict."""
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> List[Any]:
    """Return value if it is a list, else an empty list."""
    return value if isinstance(value, list) else []


def as_number(value: Any, default: float = 0) -> float:
    """Coerce a numeric-looking value, falling back to default."""
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value.replace(",", "").replace("$", "").strip())
        except ValueError:
            return default
    return default


def normalize_key(*parts: Any) -> str:
    """Build a case-insensitive identity key from text parts."""
    return "_".join(" ".join(str(part or "").lower().split()) for part in parts)


def sorted_episodes(episode_data: Mapping[Any, Any]) -> List[Tuple[int, Dict[str, Any]]]:
    """
    Order episode documents by ascending episode number.

    Keys may arrive as ints or numeric strings (JSON object keys). Entries with
    a non-numeric key or a non-dict document are skipped.
    """
    episodes: List[Tuple[int, Dict[str, Any]]] = []
    for key, doc in (episode_data or {}).items():
        try:
            number = int(key)
        except (TypeError, ValueError):
            logger.warning(f"Skipping episode entry with non-numeric key: {key!r}")
            continue
        if not isinstance(doc, dict):
            continue
        episodes.append((number, doc))
    episodes.sort(key=lambda pair: pair[0])
    return episodes


def join_notes(existing: Any, incoming: Any) -> Any:
    """Join two note strings with the note separator, skipping repeats."""
    if not incoming:
        return existing
    if not existing:
        return incoming
    if str(incoming) in str(existing).split(NOTE_SEPARATOR):
        return existing
    return f"{existing}{NOTE_SEPARATOR}{incoming}"


def normalize_equipment(equipment: Any) -> List[Dict[str, Any]]:
    """
    Convert an equipment sub-document into a flat list of items.

    Accepts the categorized schema (camera, lens, lighting, audio, grip, other)
    and the flat items[] schema, or a mix of both. Every returned item carries
    a category; items without one are filed under "other".
    """
    doc = as_dict(equipment)
    items: List[Dict[str, Any]] = []

    for category in EQUIPMENT_CATEGORIES:
        for item in as_list(doc.get(category)):
            if isinstance(item, dict):
                items.append({**item, "category": category})

    for item in as_list(doc.get("items")):
        if isinstance(item, dict):
            category = item.get("category")
            if category not in EQUIPMENT_CATEGORIES:
                category = "other"
            items.append({**item, "category": category})

    return items


def equipment_item_count(equipment: Any) -> int:
    """Count items in either equipment schema."""
    return len(normalize_equipment(equipment))
