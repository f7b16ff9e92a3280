"""
Arc auto-generation pipeline.

Runs once for an arc whose eight sections are all empty. Steps run strictly
in order (casting, schedule, equipment, locations, permits) and each result is
persisted as soon as its step succeeds, so a later failure never loses an
earlier result.
"""

import time
from typing import Any, Dict, List, Optional

from prodassist.aggregation.aggregators import aggregate_casting, aggregate_equipment, aggregate_permits
from prodassist.aggregation.breakdown import has_any_breakdown
from prodassist.aggregation.normalizers import as_dict
from prodassist.clients.generation_client import GenerationClient
from prodassist.core.exceptions import GenerationEndpointError
from prodassist.core.logging_config import get_logger
from prodassist.pipelines.base_pipeline import GenerationPipeline, GenerationStep
from prodassist.pipelines.context import ArcGenerationContext, SectionWriter

logger = get_logger("pipelines.autogen")

# Percentage reported once each step has finished
STEP_PROGRESS: Dict[str, float] = {
    "casting": 33,
    "schedule": 50,
    "equipment": 60,
    "locations": 75,
    "permits": 100,
}


def require_key(endpoint: str, response: Dict[str, Any], key: str) -> Any:
    """Pull the section payload out of a generation response."""
    value = response.get(key)
    if value is None:
        raise GenerationEndpointError(endpoint, f"Response did not include '{key}'")
    return value


class ArcAutoGenerationPipeline(GenerationPipeline):
    """Mode A: fill an empty arc from episode data and generation endpoints."""

    def __init__(
        self,
        context: ArcGenerationContext,
        client: GenerationClient,
        write_section: SectionWriter
    ):
        self.context = context
        self.client = client
        self.write_section = write_section
        self._aggregated_casting: Optional[Dict[str, Any]] = None
        super().__init__(f"arc-autogen:{context.arc_id}")

    def _define_steps(self) -> List[GenerationStep]:
        return [
            GenerationStep("casting", "Casting"),
            GenerationStep("schedule", "Schedule"),
            GenerationStep("equipment", "Equipment"),
            GenerationStep("locations", "Locations"),
            GenerationStep("permits", "Permits"),
        ]

    def _progress_after(self, index: int) -> float:
        return STEP_PROGRESS[self.tracker.steps[index].id]

    @property
    def aggregated_casting(self) -> Dict[str, Any]:
        if self._aggregated_casting is None:
            self._aggregated_casting = aggregate_casting(self.context.episode_data)
        return self._aggregated_casting

    def _skip_reason(self, step: GenerationStep) -> Optional[str]:
        breakdown = self.context.breakdown

        if step.id == "casting":
            if not self.aggregated_casting["cast"] and not breakdown.has_script_and_breakdown:
                return "No episode has both a script breakdown and a full script"
        elif step.id == "schedule":
            if not has_any_breakdown(self.context.episode_data):
                return "No episode has a script breakdown"
        elif step.id == "equipment":
            if aggregate_equipment(self.context.episode_data)["totalItems"] == 0:
                return "No equipment in episode data"
        elif step.id == "locations":
            if not breakdown.has_script_and_breakdown:
                return "No episode has both a script breakdown and a full script"
        return None

    async def _execute_step(self, step: GenerationStep) -> Any:
        handler = getattr(self, f"_step_{step.id}")
        return await handler()

    async def _step_casting(self) -> Dict[str, Any]:
        casting = self.aggregated_casting
        if not casting["cast"]:
            breakdown = self.context.breakdown
            response = await self.client.post_json("casting", {
                **self.context.base_payload(),
                "breakdownData": breakdown.to_payload(),
                "scriptData": breakdown.reference_script,
                "storyBibleData": self.context.story_bible,
            })
            casting = require_key("casting", response, "casting")
        await self.write_section("casting", casting)
        return casting

    async def _step_schedule(self) -> Any:
        response = await self.client.post_json("schedule", {
            **self.context.base_payload(),
            "schedulingMode": "cross-episode",
            "optimizationPriority": "location",
            "episodePreProdData": self.context.episode_payload(),
        })
        schedule = require_key("schedule", response, "schedule")
        await self.write_section("shootingSchedule", schedule)
        return schedule

    async def _step_equipment(self) -> Dict[str, Any]:
        equipment = aggregate_equipment(self.context.episode_data)
        await self.write_section("equipment", equipment)
        return equipment

    async def _step_locations(self) -> Dict[str, Any]:
        breakdown = self.context.breakdown
        response = await self.client.post_json("locations", {
            **self.context.base_payload(),
            "aggregatedBreakdownData": breakdown.to_payload(),
            "aggregatedScriptData": breakdown.reference_script,
            "locationGroups": self.context.location_groups,
            "storyBibleData": self.context.story_bible,
            "castingData": self.context.arc_section("casting"),
        })
        options = require_key("locations", response, "locations")

        # Generated venues wait for the user's review as pending options
        locations = {
            **as_dict(self.context.arc_section("locations")),
            "pendingOptions": options,
            "arcIndex": self.context.arc_index,
            "episodeNumbers": list(self.context.episode_numbers),
            "lastUpdated": int(time.time() * 1000),
        }
        await self.write_section("locations", locations)
        return locations

    async def _step_permits(self) -> Dict[str, Any]:
        permits = aggregate_permits(self.context.episode_data)
        await self.write_section("permits", permits)
        return permits
