"""
Tests for Arc Location Groups

Tests for prodassist/locations/location_groups.py
"""

import pytest

from prodassist.core.exceptions import (
    InvalidSelectionError,
    InvalidStatusError,
    LocationGroupNotFoundError,
)
from prodassist.locations.location_groups import (
    build_location_groups,
    extract_scene_locations,
    hydrate_locations,
    select_suggestion,
    update_cost_fields,
    update_group_status,
)


@pytest.fixture
def locations():
    """Locations document with two groups; only the pier has a selection."""
    return hydrate_locations({
        "locationGroups": [
            {
                "id": "locgroup_pier",
                "parentLocationName": "Pier",
                "shootingLocationSuggestions": [
                    {"id": "pier-a", "costBreakdown": {"dayRate": 100, "permitCost": 20, "depositAmount": 10}},
                    {"id": "pier-b", "costBreakdown": {"dayRate": 50, "permitCost": 20, "depositAmount": 10}},
                ],
                "selectedSuggestionId": "pier-a",
                "status": "scouted",
            },
            {
                "id": "locgroup_loft",
                "parentLocationName": "Loft",
                "shootingLocationSuggestions": [{"id": "loft-a", "estimatedCost": 200}],
                "selectedSuggestionId": None,
                "status": "contacted",
            },
        ]
    })


class TestExtractSceneLocations:
    """Tests for reading scene locations out of episodes."""

    def test_breakdown_headings(self, episode_data):
        found = extract_scene_locations(episode_data)

        assert [(loc.parent_name, loc.sub_location_name, loc.type) for loc in found] == [
            ("LOFT APARTMENT", "KITCHEN", "interior"),
            ("HARBOR WAREHOUSE", "", "exterior"),
            ("LOFT APARTMENT", "BEDROOM", "interior"),
        ]

    def test_script_fallback(self):
        """Test script headings are parsed when an episode has no breakdown."""
        script = "INT. LOFT - KITCHEN - NIGHT\nMaya reads.\n\nEXT. PIER\nWaves.\nINT./EXT. CAR - DAY\n"

        found = extract_scene_locations({3: {"scripts": {"fullScript": script}}})

        assert [loc.name for loc in found] == ["LOFT - KITCHEN", "PIER", "CAR"]
        assert [loc.time_of_day for loc in found] == ["NIGHT", "DAY", "DAY"]
        assert found[2].type == "both"
        assert [loc.scene_number for loc in found] == [1, 2, 3]


class TestBuildLocationGroups:
    """Tests for grouping recurring locations across the arc."""

    def test_groups_by_parent(self, episode_data, story_bible):
        groups = build_location_groups(episode_data, story_bible)
        loft = groups[0]

        assert [group["id"] for group in groups] == ["locgroup_loft_apartment", "locgroup_harbor_warehouse"]
        assert loft["totalEpisodes"] == 2
        assert loft["episodesUsed"] == [1, 2]
        assert sorted(sub["name"] for sub in loft["subLocations"]) == ["BEDROOM", "KITCHEN"]
        assert loft["timeOfDay"] == ["DAY", "NIGHT"]
        assert loft["status"] == "scouted"
        assert loft["shootingLocationSuggestions"] == []

    def test_episode_usage(self, episode_data, story_bible):
        loft = build_location_groups(episode_data, story_bible)[0]

        assert [usage["episodeNumber"] for usage in loft["episodeUsage"]] == [1, 2]
        assert loft["episodeUsage"][0]["sceneCount"] == 1
        assert loft["episodeUsage"][0]["subLocationIds"] == ["subloc_loft_apartment_kitchen"]

    def test_story_bible_reference(self, episode_data, story_bible):
        groups = build_location_groups(episode_data, story_bible)

        assert groups[0]["storyBibleReference"] == "Loft Apartment"
        assert groups[0]["confidence"] == 1.0
        assert build_location_groups(episode_data)[0]["storyBibleReference"] is None

    def test_no_locations(self):
        assert build_location_groups({1: {}, 2: {"scriptBreakdown": {"scenes": [{"sceneNumber": 1}]}}}) == []


class TestHydrateLocations:
    """Tests for normalizing generated locations documents."""

    def test_duplicate_ids_are_renamed(self):
        result = hydrate_locations([{"id": "g"}, {"id": "g"}, {"id": "g"}, {}])

        assert [group["id"] for group in result["locationGroups"]] == ["g", "g-2", "g-3", "locgroup_4"]

    def test_renamed_ids_skip_existing_ids(self):
        """Test a suffixed id never reuses an id another group already has."""
        result = hydrate_locations({"locationGroups": [{"id": "a"}, {"id": "a"}, {"id": "a-2"}]})

        ids = [group["id"] for group in result["locationGroups"]]
        assert ids == ["a", "a-3", "a-2"]
        assert len(set(ids)) == 3

    def test_stale_selection_is_cleared(self):
        result = hydrate_locations({
            "locationGroups": [
                {"id": "g", "shootingLocationSuggestions": [{"id": "s1"}], "selectedSuggestionId": "s9"},
            ]
        })

        assert result["locationGroups"][0]["selectedSuggestionId"] is None
        assert result["generated"] is True

    def test_rollup_recomputed(self, locations):
        assert locations["costRollup"]["arcTotal"] == 330
        assert "lastUpdated" in locations


class TestLocationEdits:
    """Tests for selection, status and cost edits."""

    def test_select_suggestion_updates_rollup(self, locations):
        updated = select_suggestion(locations, "locgroup_pier", "pier-b")

        assert updated["costRollup"]["arcTotal"] == 280
        assert locations["costRollup"]["arcTotal"] == 330

    def test_clear_selection(self, locations):
        updated = select_suggestion(locations, "locgroup_pier", None)
        pier = updated["locationGroups"][0]

        assert pier["selectedSuggestionId"] is None
        assert updated["costRollup"]["perLocation"][0]["selectedSuggestionId"] == "pier-b"

    def test_invalid_selection(self, locations):
        with pytest.raises(InvalidSelectionError):
            select_suggestion(locations, "locgroup_pier", "loft-a")

    def test_unknown_group(self, locations):
        with pytest.raises(LocationGroupNotFoundError):
            select_suggestion(locations, "locgroup_nowhere", None)

    def test_status_change(self, locations):
        updated = update_group_status(locations, "locgroup_loft", "booked")

        assert updated["locationGroups"][1]["status"] == "booked"
        assert updated["costRollup"] == {**locations["costRollup"]}

    def test_invalid_status(self, locations):
        with pytest.raises(InvalidStatusError):
            update_group_status(locations, "locgroup_loft", "demolished")

    def test_edit_suggestion_costs(self, locations):
        updated = update_cost_fields(locations, "locgroup_loft", {"permitCost": 40}, suggestion_id="loft-a")
        loft = updated["costRollup"]["perLocation"][1]

        assert loft["dayRate"] == 200
        assert loft["permitCost"] == 40
        assert updated["costRollup"]["arcTotal"] == 370

    def test_edit_group_estimate(self):
        locations = hydrate_locations([{"id": "g", "shootingLocationSuggestions": []}])

        updated = update_cost_fields(locations, "g", {"dayRate": 60, "insuranceRequired": True})

        assert updated["locationGroups"][0]["costEstimate"] == {"dayRate": 60, "insuranceRequired": True}
        assert updated["costRollup"]["arcTotal"] == 60
        assert updated["costRollup"]["perLocation"][0]["insuranceRequired"] is True
