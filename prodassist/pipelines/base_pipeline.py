"""
ProdAssist Base Pipeline

Step-based generation pipeline with progress tracking.

Each step moves pending -> generating -> completed | error. A step whose
prerequisites are absent moves straight from pending to completed and is
flagged as skipped, so "nothing to do" stays distinguishable from work done.
Steps are independent: a failing step is recorded and the run continues.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from prodassist.core.exceptions import InvalidStepTransitionError, ProdAssistError
from prodassist.core.logging_config import get_logger

logger = get_logger("pipelines.base")


class StepStatus(Enum):
    """Status of a generation step."""
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    ERROR = "error"


_ALLOWED_TRANSITIONS = {
    StepStatus.PENDING: {StepStatus.GENERATING},
    StepStatus.GENERATING: {StepStatus.COMPLETED, StepStatus.ERROR},
    StepStatus.COMPLETED: set(),
    StepStatus.ERROR: set(),
}


class PipelineStatus(Enum):
    """Overall outcome of a pipeline run."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class GenerationStep:
    """A step in a generation run."""
    id: str
    label: str
    status: StepStatus = StepStatus.PENDING
    error: Optional[str] = None
    skipped: bool = False
    skip_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"id": self.id, "label": self.label, "status": self.status.value, "skipped": self.skipped}
        if self.error:
            data["error"] = self.error
        if self.skip_reason:
            data["skipReason"] = self.skip_reason
        return data


@dataclass
class PipelineResult:
    """Result of a generation run."""
    status: PipelineStatus
    outputs: Dict[str, Any] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    steps: List[GenerationStep] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.status == PipelineStatus.COMPLETED


ProgressListener = Callable[[Dict[str, Any]], None]


class ProgressTracker:
    """
    Observable step list, current step pointer and percentage.

    The percentage never decreases. After cancel() the tracker keeps recording
    step state but stops notifying listeners.
    """

    def __init__(self, steps: List[GenerationStep], name: str = "generation"):
        self.name = name
        self.steps = steps
        self.current_step: Optional[str] = None
        self.percent: float = 0.0
        self.cancelled = False
        self._listeners: List[ProgressListener] = []

    def add_listener(self, listener: ProgressListener) -> None:
        self._listeners.append(listener)

    def get_step(self, step_id: str) -> GenerationStep:
        for step in self.steps:
            if step.id == step_id:
                return step
        raise KeyError(step_id)

    def _transition(self, step_id: str, target: StepStatus) -> GenerationStep:
        step = self.get_step(step_id)
        if target not in _ALLOWED_TRANSITIONS[step.status]:
            raise InvalidStepTransitionError(step_id, step.status.value, target.value)
        step.status = target
        return step

    def start(self, step_id: str) -> None:
        self._transition(step_id, StepStatus.GENERATING)
        self.current_step = step_id
        self._emit()

    def complete(self, step_id: str) -> None:
        self._transition(step_id, StepStatus.COMPLETED)
        self._emit()

    def fail(self, step_id: str, message: str) -> None:
        step = self._transition(step_id, StepStatus.ERROR)
        step.error = message
        self._emit()

    def skip(self, step_id: str, reason: str) -> None:
        step = self.get_step(step_id)
        if step.status != StepStatus.PENDING:
            raise InvalidStepTransitionError(step_id, step.status.value, StepStatus.COMPLETED.value)
        step.status = StepStatus.COMPLETED
        step.skipped = True
        step.skip_reason = reason
        self.current_step = step_id
        self._emit()

    def advance(self, percent: float) -> None:
        self.percent = max(self.percent, min(100.0, percent))
        self._emit()

    def cancel(self) -> None:
        self.cancelled = True
        logger.info(f"Progress reporting stopped for {self.name}")

    @property
    def errors(self) -> Dict[str, str]:
        return {step.id: step.error for step in self.steps if step.status == StepStatus.ERROR}

    def snapshot(self) -> Dict[str, Any]:
        return {
            "pipeline": self.name,
            "steps": [step.to_dict() for step in self.steps],
            "currentStep": self.current_step,
            "percent": round(self.percent, 1),
        }

    def _emit(self) -> None:
        if self.cancelled:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.warning(f"Progress listener failed: {e}")


def describe_error(error: Exception) -> str:
    """Human-readable message for a step failure."""
    if isinstance(error, ProdAssistError):
        return error.message
    return str(error) or error.__class__.__name__


class GenerationPipeline(ABC):
    """
    Abstract base class for generation pipelines.

    Subclasses define their steps, optionally a skip rule, and how each step
    runs. The default run() executes steps strictly in order.
    """

    def __init__(self, name: str):
        self.name = name
        self.tracker = ProgressTracker(self._define_steps(), name=name)
        self._status = PipelineStatus.PENDING

    @abstractmethod
    def _define_steps(self) -> List[GenerationStep]:
        """Define the pipeline steps. Override in subclasses."""

    @abstractmethod
    async def _execute_step(self, step: GenerationStep) -> Any:
        """Run a single step and return its output. Override in subclasses."""

    def _skip_reason(self, step: GenerationStep) -> Optional[str]:
        """Reason to skip a step, or None to run it."""
        return None

    def _progress_after(self, index: int) -> float:
        return (index + 1) / len(self.tracker.steps) * 100

    async def _run_step(self, step: GenerationStep, outputs: Dict[str, Any]) -> None:
        reason = self._skip_reason(step)
        if reason:
            logger.info(f"[{self.name}] Skipping {step.id}: {reason}")
            self.tracker.skip(step.id, reason)
            return

        self.tracker.start(step.id)
        try:
            outputs[step.id] = await self._execute_step(step)
        except Exception as e:
            message = describe_error(e)
            logger.error(f"[{self.name}] Step {step.id} failed: {message}")
            self.tracker.fail(step.id, message)
        else:
            self.tracker.complete(step.id)

    async def run(self) -> PipelineResult:
        """Run every step in order; failures are recorded, never raised."""
        start_time = datetime.now()
        self._status = PipelineStatus.RUNNING
        outputs: Dict[str, Any] = {}

        logger.info(f"Starting pipeline: {self.name}")

        for index, step in enumerate(self.tracker.steps):
            await self._run_step(step, outputs)
            self.tracker.advance(self._progress_after(index))

        return self._finish(outputs, start_time)

    def _finish(self, outputs: Dict[str, Any], start_time: datetime) -> PipelineResult:
        errors = self.tracker.errors
        if not errors:
            self._status = PipelineStatus.COMPLETED
        elif len(errors) == len(self.tracker.steps):
            self._status = PipelineStatus.FAILED
        else:
            self._status = PipelineStatus.PARTIAL

        logger.info(f"Pipeline {self.name} finished: {self._status.value} ({len(errors)} errors)")

        return PipelineResult(
            status=self._status,
            outputs=outputs,
            errors=errors,
            steps=list(self.tracker.steps),
            duration_seconds=(datetime.now() - start_time).total_seconds(),
        )

    def cancel(self) -> None:
        """Stop progress reporting. Requests already in flight are not aborted."""
        self.tracker.cancel()

    def set_progress_callback(self, callback: ProgressListener) -> None:
        self.tracker.add_listener(callback)

    @property
    def status(self) -> PipelineStatus:
        return self._status

    @property
    def steps(self) -> List[GenerationStep]:
        return list(self.tracker.steps)
