"""
Shared context for arc generation runs.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from prodassist.aggregation.breakdown import AggregatedBreakdown, aggregate_breakdowns
from prodassist.aggregation.normalizers import as_dict, as_list
from prodassist.locations.location_groups import build_location_groups

# Persists one section (document key, data) through the session's update path
SectionWriter = Callable[[str, Any], Awaitable[None]]


@dataclass
class ArcGenerationContext:
    """Everything a generation run needs to know about the arc."""
    arc_id: str
    series_id: str
    actor_id: str
    arc_index: int
    episode_numbers: List[int]
    story_bible: Dict[str, Any]
    episode_data: Dict[int, Dict[str, Any]]
    current_arc: Callable[[], Dict[str, Any]] = field(default=dict)
    _breakdown: Optional[AggregatedBreakdown] = field(default=None, init=False, repr=False)
    _location_groups: Optional[List[Dict[str, Any]]] = field(default=None, init=False, repr=False)

    @property
    def breakdown(self) -> AggregatedBreakdown:
        if self._breakdown is None:
            self._breakdown = aggregate_breakdowns(self.episode_data)
        return self._breakdown

    @property
    def location_groups(self) -> List[Dict[str, Any]]:
        """Recurring locations across the arc, grouped by parent location."""
        if self._location_groups is None:
            self._location_groups = build_location_groups(self.episode_data, self.story_bible)
        return self._location_groups

    @property
    def arc_title(self) -> str:
        arcs = as_list(as_dict(self.story_bible).get("narrativeArcs"))
        if 0 <= self.arc_index < len(arcs):
            title = as_dict(arcs[self.arc_index]).get("title")
            if title:
                return title
        return f"Arc {self.arc_index + 1}"

    def arc_section(self, key: str) -> Any:
        return as_dict(self.current_arc()).get(key)

    def base_payload(self) -> Dict[str, Any]:
        """Fields every generation endpoint receives."""
        return {
            "preProductionId": self.arc_id,
            "arcPreProductionId": self.arc_id,
            "storyBibleId": self.series_id,
            "arcIndex": self.arc_index,
            "episodeNumbers": list(self.episode_numbers),
            "userId": self.actor_id,
        }

    def episode_payload(self) -> Dict[str, Any]:
        """Episode documents keyed by episode number as JSON object keys."""
        return {str(number): doc for number, doc in sorted(self.episode_data.items())}
