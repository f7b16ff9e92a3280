"""
Arc Session

Controller for one user's work on one arc. It sequences loading (reference
data, then episodes, then the arc subscription), decides whether aggregation
and auto-generation should run, and owns the single write path to the arc
document. Each load phase and each automatic trigger fires at most once per
session.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from prodassist.aggregation.completeness import (
    has_equipment,
    has_props,
    is_arc_empty,
    needs_aggregation,
    plan_aggregation,
    section_status,
)
from prodassist.aggregation.normalizers import as_dict, as_list
from prodassist.clients.generation_client import GenerationClient
from prodassist.core.config import Settings, get_settings
from prodassist.core.exceptions import (
    EpisodeLoadError,
    ReferenceDataMissingError,
    SessionError,
)
from prodassist.core.logging_config import get_logger
from prodassist.locations.cost_rollup import compute_cost_rollup
from prodassist.locations.location_groups import (
    select_suggestion,
    update_cost_fields,
    update_group_status,
)
from prodassist.pipelines.arc_autogen_pipeline import ArcAutoGenerationPipeline, require_key
from prodassist.pipelines.base_pipeline import GenerationPipeline, PipelineResult
from prodassist.pipelines.context import ArcGenerationContext
from prodassist.pipelines.regenerate_all import RegenerateAllPipeline, RegenerationResult
from prodassist.store.base import (
    DocumentStore,
    Unsubscribe,
    get_episode_range_for_arc,
    merge_sections,
    new_arc_document,
)

logger = get_logger("session.arc")

SessionListener = Callable[[str, Dict[str, Any]], None]


class SessionPhase(str, Enum):
    """Where a session is in its load sequence."""
    CREATED = "created"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
    CLOSED = "closed"


@dataclass
class SessionFlags:
    """Once-per-session guards."""
    has_loaded_reference: bool = False
    has_loaded_episodes: bool = False
    has_subscribed: bool = False
    has_run_aggregation: bool = False
    has_checked_auto_gen: bool = False
    has_triggered_questionnaire: bool = False


class ArcSession:
    """State and operations for one arc session."""

    def __init__(
        self,
        store: DocumentStore,
        client: GenerationClient,
        arc_id: str,
        owner_id: str,
        series_id: str,
        arc_index: int,
        actor_id: Optional[str] = None,
        settings: Optional[Settings] = None
    ):
        self.store = store
        self.client = client
        self.settings = settings or get_settings()
        self.arc_id = arc_id
        self.owner_id = owner_id
        self.series_id = series_id
        self.arc_index = arc_index
        self.actor_id = actor_id or owner_id

        self.phase = SessionPhase.CREATED
        self.error: Optional[str] = None
        self.flags = SessionFlags()

        self.story_bible: Optional[Dict[str, Any]] = None
        self.episode_numbers: List[int] = []
        self.episode_data: Dict[int, Dict[str, Any]] = {}
        self.failed_episodes: Dict[int, str] = {}
        self.arc: Dict[str, Any] = {}

        self.active_tab = "casting"
        self.auto_open_questionnaire = False
        self.last_generation: Optional[PipelineResult] = None
        self.last_regeneration: Optional[RegenerationResult] = None

        self._unsubscribe: Optional[Unsubscribe] = None
        self._active_pipeline: Optional[GenerationPipeline] = None
        self._listeners: List[SessionListener] = []

    # =========================================================================
    # EVENTS
    # =========================================================================

    def add_listener(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event_type: str, data: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event_type, {"arcId": self.arc_id, **data})
            except Exception as e:
                logger.warning(f"Session listener failed on {event_type}: {e}")

    # =========================================================================
    # LOAD SEQUENCE
    # =========================================================================

    async def start(self) -> None:
        """
        Run the load sequence: reference data, episodes, subscription,
        aggregation, the auto-generation check and the questionnaire check.
        """
        if self.phase != SessionPhase.CREATED:
            raise SessionError(f"Session for arc {self.arc_id} already started")

        self.phase = SessionPhase.LOADING
        self._emit("session_loading", {})
        try:
            await self.load_reference_data()
            await self.load_episodes()
            await self.subscribe()
            await self.run_aggregation()
            await self.check_auto_generation()
            self.check_questionnaire()
        except ReferenceDataMissingError as e:
            self.phase = SessionPhase.ERROR
            self.error = e.message
            logger.error(f"Arc {self.arc_id} cannot load: {e.message}")
            self._emit("error", {"message": e.message})
            raise
        except Exception as e:
            self.phase = SessionPhase.ERROR
            self.error = str(e)
            logger.error(f"Arc {self.arc_id} load failed: {e}")
            self._emit("error", {"message": str(e)})
            raise

        self.phase = SessionPhase.READY
        self._emit("session_ready", self.snapshot())

    async def load_reference_data(self) -> None:
        """Load the story bible, resolve the episode range, and make sure the arc document exists."""
        if self.flags.has_loaded_reference:
            return

        story_bible = await self.store.get_story_bible(self.series_id, self.owner_id)
        if not story_bible:
            raise ReferenceDataMissingError(self.series_id, "story bible not found")

        episode_numbers = get_episode_range_for_arc(story_bible, self.arc_index)
        if not episode_numbers:
            raise ReferenceDataMissingError(self.series_id, f"no episode range for arc {self.arc_index}")

        arc = await self.store.get_arc_document(self.owner_id, self.series_id, self.arc_id)
        if arc is None:
            title = as_dict(as_list(story_bible.get("narrativeArcs"))[self.arc_index]).get("title")
            arc = await self.store.create_arc_document(new_arc_document(
                self.arc_id,
                self.owner_id,
                self.series_id,
                self.arc_index,
                title or f"Arc {self.arc_index + 1}",
                episode_numbers,
            ))

        self.story_bible = story_bible
        self.episode_numbers = as_list(arc.get("episodeNumbers")) or episode_numbers
        self.arc = arc
        self.flags.has_loaded_reference = True
        logger.info(f"Arc {self.arc_id}: episodes {self.episode_numbers[0]}-{self.episode_numbers[-1]}")

    async def load_episodes(self) -> None:
        """Load every episode document in range; failures are logged and skipped."""
        if self.flags.has_loaded_episodes:
            return
        if not self.flags.has_loaded_reference:
            raise SessionError("Reference data must be loaded before episodes")

        for episode_number in self.episode_numbers:
            try:
                document = await self.store.get_episode_document(
                    self.owner_id, self.series_id, episode_number
                )
            except Exception as e:
                error = EpisodeLoadError(episode_number, str(e))
                logger.warning(error.message)
                self.failed_episodes[episode_number] = str(e)
                continue
            if document:
                self.episode_data[episode_number] = document

        self.flags.has_loaded_episodes = True
        logger.info(
            f"Arc {self.arc_id}: loaded {len(self.episode_data)} of {len(self.episode_numbers)} episodes"
        )

    async def subscribe(self) -> None:
        """Watch the arc document, replacing any earlier subscription."""
        if not self.flags.has_loaded_episodes:
            raise SessionError("Episodes must be loaded before subscribing")
        await self._drop_subscription()
        self._unsubscribe = await self.store.subscribe(
            self.owner_id, self.series_id, self.arc_id, self._on_arc_change
        )
        self.flags.has_subscribed = True

    def _on_arc_change(self, document: Optional[Dict[str, Any]]) -> None:
        if document is None:
            logger.warning(f"Arc document {self.arc_id} is gone")
            self.arc = {}
        else:
            self.arc = document
        self._emit("arc_updated", {"sections": section_status(self.arc)})

    async def run_aggregation(self) -> List[str]:
        """Fill empty casting, equipment and permits sections from episode data, once."""
        if self.flags.has_run_aggregation:
            return []
        if not self.episode_data:
            logger.info(f"Arc {self.arc_id}: no episode data, aggregation deferred")
            return []

        self.flags.has_run_aggregation = True
        if not needs_aggregation(self.arc):
            logger.debug(f"Arc {self.arc_id}: casting, equipment and permits already filled")
            return []

        updates = plan_aggregation(self.arc, self.episode_data)
        if updates:
            await self.update_section("", updates)
        return sorted(updates)

    async def check_auto_generation(self) -> bool:
        """Run auto-generation if every tracked section is still empty. Fires once."""
        if self.flags.has_checked_auto_gen or not self.flags.has_run_aggregation:
            return False

        self.flags.has_checked_auto_gen = True
        if not is_arc_empty(self.arc):
            return False

        logger.info(f"Arc {self.arc_id} is empty, starting auto-generation")
        await self.run_auto_generation()
        return True

    def check_questionnaire(self) -> bool:
        """Point the session at the props tab when neither props nor equipment exist. Fires once."""
        if self.flags.has_triggered_questionnaire:
            return False

        self.flags.has_triggered_questionnaire = True
        if has_props(self.arc) or has_equipment(self.arc):
            return False

        self.active_tab = "props"
        self.auto_open_questionnaire = True
        self._emit("open_questionnaire", {"tab": "props"})
        return True

    # =========================================================================
    # WRITES
    # =========================================================================

    async def update_section(self, name: str, data: Any) -> None:
        """
        The single write path to the arc document.

        A named section is replaced wholesale; an empty name merges every key
        of data as a batch of sections.
        """
        sections = {name: data} if name else dict(data)
        if not sections:
            return

        previous = self.arc
        self.arc = merge_sections(self.arc, sections, self.actor_id)
        try:
            await self.store.update(self.arc_id, sections, self.actor_id, self.series_id)
        except Exception:
            self.arc = previous
            raise
        self._emit("arc_updated", {"sections": section_status(self.arc)})

    async def refresh_from_episodes(self) -> List[str]:
        """Re-read episodes and re-aggregate casting, equipment and permits on request."""
        self.ensure_ready()
        self.flags.has_loaded_episodes = False
        self.episode_data = {}
        self.failed_episodes = {}
        await self.load_episodes()

        updates = plan_aggregation(self.arc, self.episode_data, force=True)
        if updates:
            await self.update_section("", updates)
        return sorted(updates)

    # =========================================================================
    # GENERATION
    # =========================================================================

    def _context(self) -> ArcGenerationContext:
        return ArcGenerationContext(
            arc_id=self.arc_id,
            series_id=self.series_id,
            actor_id=self.actor_id,
            arc_index=self.arc_index,
            episode_numbers=list(self.episode_numbers),
            story_bible=self.story_bible or {},
            episode_data=dict(self.episode_data),
            current_arc=lambda: self.arc,
        )

    def _watch(self, pipeline: GenerationPipeline) -> None:
        self._active_pipeline = pipeline
        pipeline.set_progress_callback(lambda progress: self._emit("progress", progress))

    async def run_auto_generation(self) -> PipelineResult:
        """Mode A run. Each step persists its own result."""
        if self._active_pipeline is not None:
            raise SessionError(f"A generation run is already active for arc {self.arc_id}")

        pipeline = ArcAutoGenerationPipeline(self._context(), self.client, self.update_section)
        self._watch(pipeline)
        try:
            result = await pipeline.run()
        finally:
            self._active_pipeline = None

        self.last_generation = result
        self._emit("generation_complete", {
            "status": result.status.value,
            "errors": result.errors,
            "steps": [step.to_dict() for step in result.steps],
        })
        return result

    async def regenerate(
        self,
        sections: Optional[Iterable[str]] = None,
        apply_partial: Optional[bool] = None
    ) -> RegenerationResult:
        """
        Mode B run over the selected sections.

        Fully successful runs are always persisted. When some sections fail,
        the successful ones are persisted only if apply_partial (defaulting to
        the apply_partial_regeneration setting) allows it.
        """
        self.ensure_ready()
        if self._active_pipeline is not None:
            raise SessionError(f"A generation run is already active for arc {self.arc_id}")

        pipeline = RegenerateAllPipeline(self._context(), self.client, sections)
        self._watch(pipeline)
        try:
            result = await pipeline.regenerate()
        finally:
            self._active_pipeline = None

        if apply_partial is None:
            apply_partial = self.settings.apply_partial_regeneration
        if result.data and (result.success or apply_partial):
            await self.update_section("", result.data)
        elif result.data:
            logger.info(f"Arc {self.arc_id}: partial regeneration not applied ({', '.join(result.errors)} failed)")

        self.last_regeneration = result
        self._emit("regeneration_complete", result.to_dict())
        return result

    def cancel(self) -> bool:
        """Stop progress reporting for the active run. In-flight requests still finish."""
        if self._active_pipeline is None:
            return False
        self._active_pipeline.cancel()
        self._emit("cancelled", {})
        return True

    @property
    def is_generating(self) -> bool:
        return self._active_pipeline is not None

    async def request_questionnaire(self, questionnaire_type: str = "both") -> Any:
        """Generate the props/equipment setup questionnaire."""
        self.ensure_ready()
        response = await self.client.post_json("questionnaire", {
            **self._context().base_payload(),
            "storyBibleData": self.story_bible,
            "episodePreProdData": self._context().episode_payload(),
            "castingData": self.arc.get("casting"),
            "questionnaireType": questionnaire_type,
        })
        self.auto_open_questionnaire = False
        return require_key("questionnaire", response, "questionnaire")

    # =========================================================================
    # LOCATIONS
    # =========================================================================

    @property
    def locations(self) -> Dict[str, Any]:
        return as_dict(self.arc.get("locations"))

    def cost_rollup(self) -> Dict[str, Any]:
        """Rollup recomputed from the current location groups."""
        return compute_cost_rollup(as_list(self.locations.get("locationGroups"))).to_dict()

    async def select_location_suggestion(self, group_id: str, suggestion_id: Optional[str]) -> Dict[str, Any]:
        self.ensure_ready()
        updated = select_suggestion(self.locations, group_id, suggestion_id)
        await self.update_section("locations", updated)
        return updated["costRollup"]

    async def update_location(
        self,
        group_id: str,
        status: Optional[str] = None,
        costs: Optional[Dict[str, Any]] = None,
        suggestion_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Apply a status change and/or cost edit to a location group and persist the new rollup."""
        self.ensure_ready()
        if status is None and not costs:
            return self.cost_rollup()

        updated = self.locations
        if status is not None:
            updated = update_group_status(updated, group_id, status)
        if costs:
            updated = update_cost_fields(updated, group_id, costs, suggestion_id)
        await self.update_section("locations", updated)
        return updated["costRollup"]

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def ensure_ready(self) -> None:
        if self.phase != SessionPhase.READY:
            raise SessionError(f"Arc session {self.arc_id} is {self.phase.value}, not ready")

    async def _drop_subscription(self) -> None:
        if self._unsubscribe is not None:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            await unsubscribe()

    async def close(self, notify: bool = True) -> None:
        """
        Tear down the subscription and stop progress reporting.

        With notify off the listeners are detached first and hear nothing,
        which is how a session being replaced for the same arc goes away.
        """
        if not notify:
            self._listeners.clear()
        self.cancel()
        await self._drop_subscription()
        self.phase = SessionPhase.CLOSED
        self._emit("session_closed", {})
        self._listeners.clear()

    def snapshot(self) -> Dict[str, Any]:
        """Serializable view of the session for the API."""
        progress = self._active_pipeline.tracker.snapshot() if self._active_pipeline else None
        return {
            "arcId": self.arc_id,
            "seriesId": self.series_id,
            "arcIndex": self.arc_index,
            "phase": self.phase.value,
            "error": self.error,
            "episodeNumbers": self.episode_numbers,
            "loadedEpisodes": sorted(self.episode_data),
            "failedEpisodes": self.failed_episodes,
            "flags": asdict(self.flags),
            "sections": section_status(self.arc),
            "activeTab": self.active_tab,
            "autoOpenQuestionnaire": self.auto_open_questionnaire,
            "generating": self.is_generating,
            "progress": progress,
            "arc": self.arc,
        }


class SessionManager:
    """Registry of open arc sessions, one per arc id."""

    def __init__(self, store: DocumentStore, client: GenerationClient, settings: Optional[Settings] = None):
        self.store = store
        self.client = client
        self.settings = settings or get_settings()
        self._sessions: Dict[str, ArcSession] = {}

    def get(self, arc_id: str) -> Optional[ArcSession]:
        return self._sessions.get(arc_id)

    async def open(
        self,
        arc_id: str,
        owner_id: str,
        series_id: str,
        arc_index: int,
        actor_id: Optional[str] = None
    ) -> ArcSession:
        """Create a session for an arc, quietly closing any previous one for the same arc."""
        await self.close(arc_id, notify=False)
        session = ArcSession(
            self.store,
            self.client,
            arc_id=arc_id,
            owner_id=owner_id,
            series_id=series_id,
            arc_index=arc_index,
            actor_id=actor_id,
            settings=self.settings,
        )
        self._sessions[arc_id] = session
        return session

    async def close(self, arc_id: str, notify: bool = True) -> bool:
        session = self._sessions.pop(arc_id, None)
        if session is None:
            return False
        await session.close(notify)
        return True

    async def close_all(self) -> None:
        for arc_id in list(self._sessions):
            await self.close(arc_id)
