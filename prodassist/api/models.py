"""
Pydantic models for the arc API.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from prodassist.core.constants import ArcSection


class OpenArcRequest(BaseModel):
    """Open (load) an arc session."""
    series_id: str = Field(min_length=1)
    arc_index: int = Field(ge=0)
    owner_id: Optional[str] = None  # Defaults to the caller


class RegenerateRequest(BaseModel):
    """Regenerate a subset of arc sections."""
    sections: Optional[List[ArcSection]] = None  # None regenerates every section
    apply_partial: Optional[bool] = None
    only_failed: bool = False  # Retry the sections that failed in the previous run


class SelectSuggestionRequest(BaseModel):
    suggestion_id: Optional[str] = None


class CostFields(BaseModel):
    """Editable cost fields of a suggestion or a group estimate."""
    day_rate: Optional[float] = None
    permit_cost: Optional[float] = None
    deposit_amount: Optional[float] = None
    insurance_required: Optional[bool] = None

    def to_document(self) -> Dict[str, Any]:
        names = {
            "day_rate": "dayRate",
            "permit_cost": "permitCost",
            "deposit_amount": "depositAmount",
            "insurance_required": "insuranceRequired",
        }
        return {names[key]: value for key, value in self.model_dump(exclude_none=True).items()}


class LocationUpdateRequest(BaseModel):
    """Status change and/or cost edit for a location group."""
    status: Optional[str] = None
    costs: Optional[CostFields] = None
    suggestion_id: Optional[str] = None  # Edit this suggestion's costs instead of the group estimate


class QuestionnaireRequest(BaseModel):
    questionnaire_type: str = "both"


class OperationResponse(BaseModel):
    """Acknowledgement for operations that continue in the background."""
    arc_id: str
    status: str
    message: Optional[str] = None
