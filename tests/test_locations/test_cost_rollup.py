"""
Tests for Location Cost Rollup

Tests for prodassist/locations/cost_rollup.py
"""

import random

import pytest

from prodassist.locations.cost_rollup import (
    compute_cost_rollup,
    cost_line,
    selected_suggestion,
    suggestion_cost,
)


def make_group(group_id, suggestions, selected=None, **extra):
    return {
        "id": group_id,
        "parentLocationName": group_id.replace("locgroup_", "").title(),
        "shootingLocationSuggestions": suggestions,
        "selectedSuggestionId": selected,
        "status": "scouted",
        **extra,
    }


def breakdown(day_rate=0, permit_cost=0, deposit_amount=0, insurance_required=False):
    return {
        "dayRate": day_rate,
        "permitCost": permit_cost,
        "depositAmount": deposit_amount,
        "insuranceRequired": insurance_required,
    }


class TestSelectedSuggestion:
    """Tests for picking the suggestion a group is costed on."""

    def test_cheapest_when_nothing_selected(self):
        """Test the cheapest suggestion wins when there is no selection."""
        group = make_group("locgroup_pier", [
            {"id": "a", "costBreakdown": breakdown(100, 20, 10)},
            {"id": "b", "costBreakdown": breakdown(50, 20, 10)},
        ])

        line = cost_line(group)

        assert line.selected_suggestion_id == "b"
        assert line.total == 80

    def test_explicit_selection_wins(self):
        group = make_group("locgroup_pier", [
            {"id": "a", "costBreakdown": breakdown(100, 20, 10)},
            {"id": "b", "costBreakdown": breakdown(50, 20, 10)},
        ], selected="a")

        assert cost_line(group).total == 130

    def test_stale_selection_falls_back_to_cheapest(self):
        group = make_group("locgroup_pier", [
            {"id": "a", "costBreakdown": breakdown(100)},
            {"id": "b", "costBreakdown": breakdown(50)},
        ], selected="gone")

        assert selected_suggestion(group)["id"] == "b"

    def test_tie_keeps_source_order(self):
        group = make_group("locgroup_pier", [
            {"id": "first", "costBreakdown": breakdown(75)},
            {"id": "second", "costBreakdown": breakdown(75)},
        ])

        assert selected_suggestion(group)["id"] == "first"

    def test_no_suggestions(self):
        """Test a group without suggestions costs its estimate, or zero."""
        bare = cost_line(make_group("locgroup_pier", []))
        estimated = cost_line(make_group("locgroup_pier", [], costEstimate=breakdown(40, 5, 0, True)))

        assert bare.selected_suggestion_id is None
        assert bare.total == 0
        assert estimated.total == 45
        assert estimated.insurance_required is True


class TestFieldPrecedence:
    """Tests for per-field cost fallbacks."""

    def test_legacy_flat_fields(self):
        suggestion = {"id": "a", "estimatedCost": 300, "depositAmount": 50, "logistics": {"permitCost": 25}}

        line = cost_line(make_group("locgroup_x", [suggestion], selected="a"))

        assert (line.day_rate, line.permit_cost, line.deposit_amount) == (300, 25, 50)

    def test_breakdown_beats_flat_beats_group_estimate(self):
        suggestion = {
            "id": "a",
            "costBreakdown": {"dayRate": 10},
            "estimatedCost": 999,
            "permitCost": 7,
        }
        group = make_group("locgroup_x", [suggestion], selected="a", costEstimate=breakdown(1, 2, 3, True))

        line = cost_line(group)

        assert line.day_rate == 10
        assert line.permit_cost == 7
        assert line.deposit_amount == 3
        assert line.insurance_required is True

    def test_explicit_zero_is_not_missing(self):
        suggestion = {"id": "a", "costBreakdown": {"dayRate": 0}, "estimatedCost": 500}

        assert cost_line(make_group("locgroup_x", [suggestion])).day_rate == 0

    def test_negative_values_clamped(self):
        suggestion = {"id": "a", "costBreakdown": breakdown(-100, 30, -5)}

        line = cost_line(make_group("locgroup_x", [suggestion]))

        assert line.day_rate == 0
        assert line.deposit_amount == 0
        assert line.total == 30

    def test_insurance_is_not_a_cost(self):
        suggestion = {"id": "a", "costBreakdown": breakdown(100, 0, 0, True)}

        assert suggestion_cost(suggestion, {}) == 100


class TestComputeCostRollup:
    """Tests for the arc-level rollup."""

    def test_arc_total_is_sum_of_lines(self):
        groups = [
            make_group("locgroup_pier", [{"id": "a", "costBreakdown": breakdown(100, 20, 10)}]),
            make_group("locgroup_loft", [{"id": "b", "costBreakdown": breakdown(50)}]),
        ]

        rollup = compute_cost_rollup(groups).to_dict()

        assert rollup["arcTotal"] == 180
        assert [line["locationId"] for line in rollup["perLocation"]] == ["locgroup_pier", "locgroup_loft"]
        assert rollup["perLocation"][0]["total"] == 130

    def test_empty(self):
        assert compute_cost_rollup([]).to_dict() == {"perLocation": [], "arcTotal": 0}

    def test_deterministic(self):
        groups = [make_group("locgroup_pier", [{"id": "a", "estimatedCost": 10}, {"id": "b", "estimatedCost": 5}])]

        assert compute_cost_rollup(groups).to_dict() == compute_cost_rollup(groups).to_dict()

    @pytest.mark.parametrize("seed", range(5))
    def test_total_matches_after_random_edits(self, seed):
        """Test arcTotal stays the sum of line totals across random selection and cost edits."""
        rng = random.Random(seed)
        groups = [
            make_group(f"locgroup_{g}", [
                {"id": f"s{g}-{s}", "costBreakdown": breakdown(rng.randint(-50, 500), rng.randint(0, 100))}
                for s in range(rng.randint(0, 4))
            ])
            for g in range(6)
        ]

        for _ in range(25):
            group = rng.choice(groups)
            suggestions = group["shootingLocationSuggestions"]
            if suggestions and rng.random() < 0.5:
                group["selectedSuggestionId"] = rng.choice(suggestions + [{"id": None}])["id"]
            elif suggestions:
                rng.choice(suggestions)["costBreakdown"]["depositAmount"] = rng.randint(-20, 200)

            rollup = compute_cost_rollup(groups)
            assert rollup.arc_total == sum(line.total for line in rollup.per_location)
            assert all(line.total >= 0 for line in rollup.per_location)
