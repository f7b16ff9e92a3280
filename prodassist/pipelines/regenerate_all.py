"""
Regenerate-all pipeline.

Regenerates a user-selected subset of arc sections. Sections are independent
and run concurrently; results and errors are keyed by section so the order in
which calls finish does not matter. Nothing is persisted here: the caller
decides what to do with partial results.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from prodassist.aggregation.aggregators import aggregate_permits
from prodassist.clients.generation_client import GenerationClient, StreamEvent
from prodassist.core.constants import SECTION_SPECS, ArcSection, SectionSpec, section_from_key
from prodassist.core.logging_config import get_logger
from prodassist.locations.location_groups import hydrate_locations
from prodassist.pipelines.arc_autogen_pipeline import require_key
from prodassist.pipelines.base_pipeline import GenerationPipeline, GenerationStep, PipelineResult
from prodassist.pipelines.context import ArcGenerationContext

logger = get_logger("pipelines.regenerate")

SECTION_LABELS: Dict[ArcSection, str] = {
    ArcSection.CASTING: "Casting",
    ArcSection.LOCATIONS: "Locations",
    ArcSection.PROPS: "Props & Wardrobe",
    ArcSection.EQUIPMENT: "Equipment",
    ArcSection.SCHEDULE: "Schedule",
    ArcSection.BUDGET: "Budget",
    ArcSection.PERMITS: "Permits",
    ArcSection.MARKETING: "Marketing",
}


@dataclass
class RegenerationResult:
    """
    Outcome of a regenerate-all run.

    data maps arc document keys to regenerated content for the sections that
    succeeded; errors maps section names to messages for those that failed.
    """
    data: Dict[str, Any] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    sections: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def failed_sections(self) -> List[str]:
        return [section for section in self.sections if section in self.errors]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data,
            "errors": self.errors,
            "failedSections": self.failed_sections,
        }


def parse_sections(sections: Optional[Iterable[str]]) -> List[ArcSection]:
    """Resolve section names (or document keys) in canonical order; None selects every section."""
    if sections is None:
        return list(SECTION_LABELS)
    requested = {section_from_key(section) for section in sections}
    return [section for section in SECTION_LABELS if section in requested]


class RegenerateAllPipeline(GenerationPipeline):
    """Mode B: regenerate selected arc sections concurrently."""

    def __init__(
        self,
        context: ArcGenerationContext,
        client: GenerationClient,
        sections: Optional[Iterable[str]] = None
    ):
        self.context = context
        self.client = client
        self.sections = parse_sections(sections)
        self._finished = 0
        super().__init__(f"arc-regenerate:{context.arc_id}")

    def _define_steps(self) -> List[GenerationStep]:
        return [GenerationStep(section.value, SECTION_LABELS[section]) for section in self.sections]

    async def _run_and_count(self, step: GenerationStep, outputs: Dict[str, Any]) -> None:
        await self._run_step(step, outputs)
        self._finished += 1
        self.tracker.advance(self._finished / len(self.tracker.steps) * 100)

    async def run(self) -> PipelineResult:
        start_time = datetime.now()
        outputs: Dict[str, Any] = {}

        logger.info(f"Regenerating sections: {', '.join(s.value for s in self.sections)}")
        await asyncio.gather(*(self._run_and_count(step, outputs) for step in self.tracker.steps))

        return self._finish(outputs, start_time)

    async def regenerate(self) -> RegenerationResult:
        """Run the pipeline and key the results by arc document key."""
        result = await self.run()
        data = {
            SECTION_SPECS[ArcSection(section)].document_key: output
            for section, output in result.outputs.items()
        }
        return RegenerationResult(
            data=data,
            errors=dict(result.errors),
            sections=[section.value for section in self.sections],
        )

    async def _execute_step(self, step: GenerationStep) -> Any:
        section = ArcSection(step.id)
        spec = SECTION_SPECS[section]

        if section == ArcSection.PERMITS:
            return aggregate_permits(self.context.episode_data)
        if spec.streaming:
            result = await self._stream_section(spec)
            return hydrate_locations(result) if section == ArcSection.LOCATIONS else result

        response = await self.client.post_json(spec.endpoint, self._payload(section))
        return require_key(spec.endpoint, response, spec.response_key)

    async def _stream_section(self, spec: SectionSpec) -> Any:
        def on_progress(event: StreamEvent) -> None:
            if event.message:
                logger.debug(f"{spec.section.value}: {event.message}")

        return await self.client.stream_result(
            spec.endpoint,
            self._payload(spec.section),
            on_progress=on_progress,
            is_cancelled=lambda: self.tracker.cancelled,
        )

    def _payload(self, section: ArcSection) -> Dict[str, Any]:
        context = self.context
        casting = context.arc_section("casting")
        payload = {
            **context.base_payload(),
            "storyBibleData": context.story_bible,
            "episodePreProdData": context.episode_payload(),
        }

        if section in (ArcSection.LOCATIONS, ArcSection.PROPS, ArcSection.BUDGET, ArcSection.SCHEDULE):
            payload["castingData"] = casting
        if section == ArcSection.LOCATIONS:
            payload["locationGroups"] = context.location_groups
        elif section == ArcSection.PROPS:
            payload["arcTitle"] = context.arc_title
        elif section == ArcSection.BUDGET:
            payload["locationsData"] = context.arc_section("locations")
            payload["equipmentData"] = context.arc_section("equipment")
        elif section == ArcSection.SCHEDULE:
            payload.update({
                "storyBible": context.story_bible,
                "arcLocationsData": context.arc_section("locations"),
                "schedulingMode": "cross-episode",
                "optimizationPriority": "location",
            })
        elif section == ArcSection.MARKETING:
            payload = {
                "storyBible": context.story_bible,
                "arcPreProductionData": {
                    "arcIndex": context.arc_index,
                    "episodeNumbers": list(context.episode_numbers),
                    "arcTitle": context.arc_title,
                    "casting": casting,
                },
                "episodePreProdData": context.episode_payload(),
                "arcIndex": context.arc_index,
                "userId": context.actor_id,
            }
        return payload
