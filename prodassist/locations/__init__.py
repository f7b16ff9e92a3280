"""
Arc locations: location groups and their cost rollup.
"""

from .cost_rollup import CostRollup, LocationCostLine, compute_cost_rollup, selected_suggestion
from .location_groups import (
    build_location_groups,
    extract_scene_locations,
    hydrate_locations,
    select_suggestion,
    update_cost_fields,
    update_group_status,
)
