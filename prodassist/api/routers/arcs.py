"""Arcs router for the ProdAssist API.

Opens arc sessions and exposes their operations: state, refresh,
regeneration, cancellation, location edits and the cost rollup.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from prodassist.api.deps import (
    get_current_user_id,
    get_session_manager,
    require_ready,
    require_session,
)
from prodassist.api.models import (
    LocationUpdateRequest,
    OpenArcRequest,
    OperationResponse,
    QuestionnaireRequest,
    RegenerateRequest,
    SelectSuggestionRequest,
)
from prodassist.api.routers.sse import publish_event
from prodassist.core.config import get_settings
from prodassist.core.exceptions import (
    GenerationError,
    InvalidSelectionError,
    InvalidStatusError,
    LocationGroupNotFoundError,
    SessionError,
)
from prodassist.core.logging_config import get_logger
from prodassist.session.arc_session import ArcSession, SessionManager

logger = get_logger("api.arcs")

router = APIRouter()

# Rate limiter for generation endpoints
limiter = Limiter(key_func=get_remote_address)

GENERATION_LIMIT = get_settings().generation_rate_limit


async def _start_session(session: ArcSession) -> None:
    try:
        await session.start()
    except Exception as e:
        # Recorded on the session and streamed as an error event
        logger.error(f"Arc {session.arc_id} failed to load: {e}")


async def _regenerate(session: ArcSession, sections, apply_partial) -> None:
    try:
        await session.regenerate(sections, apply_partial)
    except Exception as e:
        logger.error(f"Regeneration for arc {session.arc_id} failed: {e}")
        publish_event(session.arc_id, "error", {"message": str(e)})


@router.post("/{arc_id}/open", response_model=OperationResponse, status_code=202)
async def open_arc(
    arc_id: str,
    body: OpenArcRequest,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
):
    """Open an arc session and run its load sequence in the background."""
    session = await manager.open(
        arc_id,
        owner_id=body.owner_id or user_id,
        series_id=body.series_id,
        arc_index=body.arc_index,
        actor_id=user_id,
    )
    session.add_listener(lambda event_type, data: publish_event(arc_id, event_type, data))
    background_tasks.add_task(_start_session, session)

    logger.info(f"Opening arc {arc_id} (series {body.series_id}, arc {body.arc_index})")
    return OperationResponse(arc_id=arc_id, status="loading")


@router.get("/{arc_id}/state")
async def get_arc_state(
    arc_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
):
    """Current session state, including the arc document."""
    session = require_session(manager, arc_id)
    state = session.snapshot()
    if session.last_regeneration is not None:
        state["lastRegeneration"] = session.last_regeneration.to_dict()
    if session.last_generation is not None:
        state["lastGeneration"] = {
            "status": session.last_generation.status.value,
            "errors": session.last_generation.errors,
            "steps": [step.to_dict() for step in session.last_generation.steps],
        }
    return state


@router.post("/{arc_id}/refresh")
async def refresh_arc(
    arc_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
):
    """Reload episodes and re-aggregate casting, equipment and permits."""
    session = require_ready(require_session(manager, arc_id))
    try:
        updated = await session.refresh_from_episodes()
    except SessionError as e:
        raise HTTPException(status_code=409, detail=e.message)
    except Exception as e:
        logger.error(f"Refresh failed for arc {arc_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return {"arc_id": arc_id, "updated_sections": updated}


@router.post("/{arc_id}/regenerate", response_model=OperationResponse, status_code=202)
@limiter.limit(GENERATION_LIMIT)
async def regenerate_arc(
    request: Request,
    arc_id: str,
    body: RegenerateRequest,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
):
    """Regenerate the selected sections in the background."""
    session = require_ready(require_session(manager, arc_id))
    if session.is_generating:
        raise HTTPException(status_code=409, detail="A generation run is already active")

    if body.only_failed:
        if session.last_regeneration is None or not session.last_regeneration.failed_sections:
            raise HTTPException(status_code=400, detail="No failed sections to retry")
        sections = session.last_regeneration.failed_sections
    elif body.sections is not None:
        sections = [section.value for section in body.sections]
    else:
        sections = None

    background_tasks.add_task(_regenerate, session, sections, body.apply_partial)
    return OperationResponse(
        arc_id=arc_id,
        status="regenerating",
        message=", ".join(sections) if sections else "all sections",
    )


@router.post("/{arc_id}/cancel")
async def cancel_generation(
    arc_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
):
    """Stop progress reporting for the active run."""
    session = require_session(manager, arc_id)
    return {"arc_id": arc_id, "cancelled": session.cancel()}


@router.post("/{arc_id}/questionnaire")
@limiter.limit(GENERATION_LIMIT)
async def generate_questionnaire(
    request: Request,
    arc_id: str,
    body: QuestionnaireRequest,
    user_id: str = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
):
    """Generate the props/equipment setup questionnaire."""
    session = require_ready(require_session(manager, arc_id))
    try:
        questionnaire = await session.request_questionnaire(body.questionnaire_type)
    except GenerationError as e:
        raise HTTPException(status_code=502, detail=e.message)
    return {"arc_id": arc_id, "questionnaire": questionnaire}


@router.get("/{arc_id}/cost-rollup")
async def get_cost_rollup(
    arc_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
):
    """Cost rollup recomputed from the arc's location groups."""
    session = require_ready(require_session(manager, arc_id))
    return session.cost_rollup()


@router.post("/{arc_id}/locations/{group_id}/select")
async def select_location(
    arc_id: str,
    group_id: str,
    body: SelectSuggestionRequest,
    user_id: str = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
):
    """Select a shooting location suggestion for a location group."""
    session = require_ready(require_session(manager, arc_id))
    try:
        rollup = await session.select_location_suggestion(group_id, body.suggestion_id)
    except LocationGroupNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except InvalidSelectionError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return {"arc_id": arc_id, "group_id": group_id, "costRollup": rollup}


@router.patch("/{arc_id}/locations/{group_id}")
async def update_location(
    arc_id: str,
    group_id: str,
    body: LocationUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
):
    """Change a location group's status and/or cost fields."""
    session = require_ready(require_session(manager, arc_id))
    try:
        rollup = await session.update_location(
            group_id,
            status=body.status,
            costs=body.costs.to_document() if body.costs else None,
            suggestion_id=body.suggestion_id,
        )
    except LocationGroupNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except (InvalidSelectionError, InvalidStatusError) as e:
        raise HTTPException(status_code=400, detail=e.message)
    return {"arc_id": arc_id, "group_id": group_id, "costRollup": rollup}


@router.delete("/{arc_id}")
async def close_arc(
    arc_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
):
    """Close the arc session and drop its subscription."""
    if not await manager.close(arc_id):
        raise HTTPException(status_code=404, detail=f"No open session for arc {arc_id}")
    return {"arc_id": arc_id, "closed": True}
