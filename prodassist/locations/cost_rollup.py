"""
Location cost rollup.

Derives per-location and arc-total cost estimates from each location group's
selected (or cheapest) shooting location suggestion. The rollup is always
recomputed from the full list of groups; it is never patched in place.

Cost fields are read with this precedence, first non-null wins:

    suggestion.costBreakdown.<field>
    suggestion.<flat field>            (estimatedCost is the flat day rate)
    suggestion.logistics.permitCost    (permit cost only)
    group.costEstimate.<field>
    0 / False
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from prodassist.aggregation.normalizers import as_dict, as_list, as_number


@dataclass
class LocationCostLine:
    """Cost estimate for one location group."""
    location_id: str
    parent_location_name: Optional[str]
    selected_suggestion_id: Optional[str]
    day_rate: float = 0
    permit_cost: float = 0
    deposit_amount: float = 0
    insurance_required: bool = False

    @property
    def total(self) -> float:
        # Insurance is a flag, not a cost line
        return self.day_rate + self.permit_cost + self.deposit_amount

    def to_dict(self) -> Dict[str, Any]:
        return {
            "locationId": self.location_id,
            "parentLocationName": self.parent_location_name,
            "selectedSuggestionId": self.selected_suggestion_id,
            "dayRate": self.day_rate,
            "permitCost": self.permit_cost,
            "depositAmount": self.deposit_amount,
            "insuranceRequired": self.insurance_required,
            "total": self.total,
        }


@dataclass
class CostRollup:
    """Per-location cost lines and their arc-wide sum."""
    per_location: List[LocationCostLine] = field(default_factory=list)

    @property
    def arc_total(self) -> float:
        return sum(line.total for line in self.per_location)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "perLocation": [line.to_dict() for line in self.per_location],
            "arcTotal": self.arc_total,
        }


def _first_present(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _cost_field(value: Any) -> float:
    return max(0, as_number(value))


def _resolve_costs(suggestion: Optional[Dict[str, Any]], group: Dict[str, Any]) -> Dict[str, Any]:
    suggestion = as_dict(suggestion)
    breakdown = as_dict(suggestion.get("costBreakdown"))
    logistics = as_dict(suggestion.get("logistics"))
    estimate = as_dict(group.get("costEstimate"))

    day_rate = _first_present(
        breakdown.get("dayRate"), suggestion.get("estimatedCost"), estimate.get("dayRate")
    )
    permit_cost = _first_present(
        breakdown.get("permitCost"),
        suggestion.get("permitCost"),
        logistics.get("permitCost"),
        estimate.get("permitCost"),
    )
    deposit_amount = _first_present(
        breakdown.get("depositAmount"), suggestion.get("depositAmount"), estimate.get("depositAmount")
    )
    insurance_required = _first_present(
        breakdown.get("insuranceRequired"),
        suggestion.get("insuranceRequired"),
        estimate.get("insuranceRequired"),
    )

    return {
        "day_rate": _cost_field(day_rate),
        "permit_cost": _cost_field(permit_cost),
        "deposit_amount": _cost_field(deposit_amount),
        "insurance_required": bool(insurance_required),
    }


def suggestion_cost(suggestion: Dict[str, Any], group: Dict[str, Any]) -> float:
    """Total cost of a suggestion within its group (day rate + permit + deposit)."""
    costs = _resolve_costs(suggestion, group)
    return costs["day_rate"] + costs["permit_cost"] + costs["deposit_amount"]


def selected_suggestion(group: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    The suggestion a group's costs are based on.

    The one matching selectedSuggestionId if it still exists, otherwise the
    cheapest suggestion (first in source order on ties), or None when the
    group has no suggestions.
    """
    suggestions = [s for s in as_list(group.get("shootingLocationSuggestions")) if isinstance(s, dict)]
    if not suggestions:
        return None

    selected_id = group.get("selectedSuggestionId")
    if selected_id is not None:
        for suggestion in suggestions:
            if suggestion.get("id") == selected_id:
                return suggestion

    # min() keeps the first of equal elements
    return min(suggestions, key=lambda s: suggestion_cost(s, group))


def cost_line(group: Dict[str, Any]) -> LocationCostLine:
    """Cost line for a single location group."""
    suggestion = selected_suggestion(group)
    return LocationCostLine(
        location_id=group.get("id"),
        parent_location_name=group.get("parentLocationName"),
        selected_suggestion_id=suggestion.get("id") if suggestion else None,
        **_resolve_costs(suggestion, group),
    )


def compute_cost_rollup(location_groups: List[Dict[str, Any]]) -> CostRollup:
    """Recompute the cost rollup for every location group from scratch."""
    return CostRollup(
        per_location=[cost_line(group) for group in as_list(location_groups) if isinstance(group, dict)]
    )
