"""
Cross-episode script breakdown aggregation.

Generation endpoints that work at arc level (casting, schedule, locations)
receive every episode's breakdown scenes in one list, each scene tagged with
the episode it came from.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from prodassist.aggregation.normalizers import as_dict, as_list, sorted_episodes


@dataclass
class AggregatedBreakdown:
    """Breakdown scenes and full scripts gathered across an arc."""
    scenes: List[Dict[str, Any]] = field(default_factory=list)
    scripts: List[str] = field(default_factory=list)
    episodes_with_breakdown: List[int] = field(default_factory=list)
    episodes_with_script_and_breakdown: List[int] = field(default_factory=list)

    @property
    def total_scenes(self) -> int:
        return len(self.scenes)

    @property
    def has_script_and_breakdown(self) -> bool:
        """True when at least one episode has both a breakdown and a full script."""
        return bool(self.episodes_with_script_and_breakdown)

    @property
    def reference_script(self) -> Optional[str]:
        """The first full script, sent to endpoints that take a single script."""
        return self.scripts[0] if self.scripts else None

    def to_payload(self) -> Dict[str, Any]:
        return {"scenes": self.scenes, "totalScenes": self.total_scenes}


def breakdown_scenes(episode_doc: Any) -> List[Dict[str, Any]]:
    """Scenes of an episode's script breakdown, or an empty list."""
    scenes = as_list(as_dict(as_dict(episode_doc).get("scriptBreakdown")).get("scenes"))
    return [scene for scene in scenes if isinstance(scene, dict)]


def full_script(episode_doc: Any) -> Optional[str]:
    """An episode's full script text, if present."""
    script = as_dict(as_dict(episode_doc).get("scripts")).get("fullScript")
    return script if isinstance(script, str) and script.strip() else None


def aggregate_breakdowns(episode_data: Mapping[Any, Any]) -> AggregatedBreakdown:
    """Collect breakdown scenes (tagged with their episode) and scripts in episode order."""
    result = AggregatedBreakdown()

    for episode_number, doc in sorted_episodes(episode_data):
        scenes = breakdown_scenes(doc)
        script = full_script(doc)

        if scenes:
            result.episodes_with_breakdown.append(episode_number)
            result.scenes.extend(
                {**scene, "episodeNumber": episode_number, "linkedEpisode": episode_number}
                for scene in scenes
            )
        if script:
            result.scripts.append(script)
        if scenes and script:
            result.episodes_with_script_and_breakdown.append(episode_number)

    return result


def has_any_breakdown(episode_data: Mapping[Any, Any]) -> bool:
    """True when any episode carries a non-empty script breakdown."""
    return any(breakdown_scenes(doc) for _, doc in sorted_episodes(episode_data))
