"""
ProdAssist Constants

Section names, document keys and endpoint names shared by the aggregators,
the generation pipelines and the API.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple


class ArcSection(str, Enum):
    """The eight tracked sections of an arc document."""
    CASTING = "casting"
    SCHEDULE = "schedule"
    LOCATIONS = "locations"
    PERMITS = "permits"
    BUDGET = "budget"
    EQUIPMENT = "equipment"
    PROPS = "props"
    MARKETING = "marketing"


@dataclass(frozen=True)
class SectionSpec:
    """How a section is generated and where its result is stored."""
    section: ArcSection
    document_key: str
    endpoint: Optional[str]
    response_key: Optional[str] = None
    streaming: bool = False


SECTION_SPECS: Dict[ArcSection, SectionSpec] = {
    ArcSection.CASTING: SectionSpec(ArcSection.CASTING, "casting", "casting", "casting"),
    ArcSection.SCHEDULE: SectionSpec(ArcSection.SCHEDULE, "shootingSchedule", "schedule", "schedule"),
    ArcSection.LOCATIONS: SectionSpec(ArcSection.LOCATIONS, "locations", "arc-locations", streaming=True),
    ArcSection.PERMITS: SectionSpec(ArcSection.PERMITS, "permits", None),
    ArcSection.BUDGET: SectionSpec(ArcSection.BUDGET, "budget", "budget", "budget"),
    ArcSection.EQUIPMENT: SectionSpec(ArcSection.EQUIPMENT, "equipment", "equipment", "equipment"),
    ArcSection.PROPS: SectionSpec(ArcSection.PROPS, "propsWardrobe", "arc-props-wardrobe", "propsWardrobe"),
    ArcSection.MARKETING: SectionSpec(ArcSection.MARKETING, "marketing", "arc-marketing", "marketing"),
}

# Older arc documents stored marketing under this key
LEGACY_MARKETING_KEY = "arcMarketing"

# Generation endpoint paths, relative to the generation base URL
DEFAULT_ENDPOINTS: Dict[str, str] = {
    "casting": "/api/generate/casting",
    "schedule": "/api/generate/schedule",
    "locations": "/api/generate/locations",
    "arc-locations": "/api/generate/arc-locations",
    "arc-props-wardrobe": "/api/generate/arc-props-wardrobe",
    "equipment": "/api/generate/equipment",
    "questionnaire": "/api/generate/questionnaire",
    "arc-marketing": "/api/generate/arc-marketing",
    "budget": "/api/generate/budget",
}

EQUIPMENT_CATEGORIES: Tuple[str, ...] = ("camera", "lens", "lighting", "audio", "grip", "other")

LOCATION_STATUSES: Tuple[str, ...] = ("scouted", "contacted", "quoted", "booked", "confirmed")

# Equipment statuses counted as "obtained" in the arc summary
OBTAINED_EQUIPMENT_STATUSES: Tuple[str, ...] = ("obtained", "reserved")

# Keys written by the store or the aggregators that carry no section content
META_KEYS = frozenset({
    "lastUpdated", "updatedBy", "lastUpdatedBy", "generated", "generatedAt",
    "episodeNumber", "episodeTitle", "arcIndex", "episodeNumbers",
})

NOTE_SEPARATOR = " | "

DEFAULT_ARC_EPISODE_COUNT = 10


def section_from_key(value: str) -> ArcSection:
    """Resolve a section from its name or its document key."""
    for spec in SECTION_SPECS.values():
        if value in (spec.section.value, spec.document_key):
            return spec.section
    raise ValueError(f"Unknown arc section: {value}")
