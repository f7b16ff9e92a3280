"""
Arc aggregation: folding per-episode pre-production documents into arc summaries.
"""

from .aggregators import aggregate_casting, aggregate_equipment, aggregate_permits
from .breakdown import AggregatedBreakdown, aggregate_breakdowns, has_any_breakdown
from .completeness import (
    has_casting,
    has_schedule,
    has_locations,
    has_permits,
    has_budget,
    has_equipment,
    has_props,
    has_marketing,
    is_arc_empty,
    needs_aggregation,
    plan_aggregation,
    section_status,
)
from .normalizers import normalize_equipment, equipment_item_count, sorted_episodes
