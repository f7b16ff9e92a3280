"""
Pytest Configuration and Fixtures

Shared fixtures for all tests.
"""

import copy
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock

import pytest

from prodassist.clients.generation_client import GenerationClient
from prodassist.core.config import Settings
from prodassist.store.memory_store import InMemoryDocumentStore

OWNER_ID = "user-1"
SERIES_ID = "series-1"
ARC_ID = "arc-1"


@pytest.fixture
def settings() -> Settings:
    """Settings for tests: in-memory store, no rate limits."""
    return Settings(
        store_backend="memory",
        rate_limit_enabled=False,
        generation_base_url="http://generation.test",
        _env_file=None,
    )


@pytest.fixture
def story_bible() -> Dict[str, Any]:
    """Story bible with two arcs: episodes 1-2 and 3-5."""
    return {
        "id": SERIES_ID,
        "title": "Night Shift",
        "narrativeArcs": [
            {"title": "The Move", "episodes": [{"title": "Pilot"}, {"title": "Boxes"}]},
            {"title": "The Job", "episodes": [{}, {}, {}]},
        ],
        "worldBuilding": {
            "locations": [{"name": "Loft Apartment"}, {"name": "Harbor Warehouse"}],
        },
    }


@pytest.fixture
def episode_one() -> Dict[str, Any]:
    return {
        "episodeNumber": 1,
        "scriptBreakdown": {
            "scenes": [
                {"sceneNumber": 1, "location": "INT. LOFT APARTMENT - KITCHEN", "timeOfDay": "DAY"},
                {"sceneNumber": 2, "location": "EXT. HARBOR WAREHOUSE", "timeOfDay": "NIGHT"},
            ]
        },
        "scripts": {"fullScript": "INT. LOFT APARTMENT - KITCHEN - DAY\nMaya unpacks."},
        "casting": {
            "cast": [
                {
                    "characterName": "Maya",
                    "role": "lead",
                    "actorName": "A. Actor",
                    "scenes": [1, 2],
                    "totalShootDays": 2,
                    "status": "pending",
                    "notes": "Needs stunt double",
                },
                {"characterName": "Dock Worker", "role": "supporting", "scenes": [2], "confirmed": True},
            ]
        },
        "equipment": {
            "camera": [{"name": "ARRI Alexa", "quantity": 1, "totalCost": 1200, "status": "reserved"}],
            "lighting": [{"name": "LED Panel", "quantity": 4, "totalCost": 300}],
        },
        "permits": {
            "permits": [
                {"name": "Street Filming", "type": "city", "location": "Harbor", "cost": 250, "status": "pending"},
            ]
        },
    }


@pytest.fixture
def episode_two() -> Dict[str, Any]:
    return {
        "episodeNumber": 2,
        "scriptBreakdown": {
            "scenes": [
                {"sceneNumber": 1, "location": "INT. LOFT APARTMENT - BEDROOM", "timeOfDay": "NIGHT"},
            ]
        },
        "casting": {
            "cast": [
                {
                    "characterName": "maya ",
                    "role": "lead",
                    "scenes": [1, 2, 3],
                    "totalShootDays": 3,
                    "status": "confirmed",
                    "confirmed": True,
                    "notes": "Available weekends",
                },
            ]
        },
        "equipment": {
            "items": [
                {"name": "ARRI Alexa", "category": "camera", "totalCost": 900},
                {"name": "Boom Pole", "category": "sound"},
            ]
        },
        "permits": {
            "permits": [
                {"name": "Street Filming", "type": "city", "location": "Harbor", "cost": 400, "status": "approved"},
            ]
        },
    }


@pytest.fixture
def episode_data(episode_one, episode_two) -> Dict[int, Dict[str, Any]]:
    return {1: episode_one, 2: episode_two}


@pytest.fixture
def memory_store(story_bible, episode_data) -> InMemoryDocumentStore:
    """In-memory store seeded with the story bible and both episodes of arc 0."""
    store = InMemoryDocumentStore()
    store.put_story_bible(SERIES_ID, story_bible)
    for number, doc in episode_data.items():
        store.put_episode(OWNER_ID, SERIES_ID, number, doc)
    return store


@pytest.fixture
def generation_client() -> MagicMock:
    """GenerationClient double whose endpoints answer with minimal valid payloads."""
    client = MagicMock(spec=GenerationClient)

    async def post_json(endpoint, payload):
        responses = {
            "casting": {"casting": {"cast": [{"characterName": "Generated"}]}},
            "schedule": {"schedule": {"days": [{"day": 1}]}},
            "locations": {"locations": [{"name": "Option A"}]},
            "budget": {"budget": {"total": 1000}},
            "equipment": {"equipment": {"camera": [{"name": "Generated Cam"}]}},
            "arc-props-wardrobe": {"propsWardrobe": {"props": [{"name": "Lamp"}]}},
            "arc-marketing": {"marketing": {"tagline": "Tonight"}},
            "questionnaire": {"questionnaire": {"questions": [{"id": "q1"}]}},
        }
        return copy.deepcopy(responses[endpoint])

    client.post_json = AsyncMock(side_effect=post_json)
    client.stream_result = AsyncMock(return_value={
        "locationGroups": [{"id": "locgroup_loft", "parentLocationName": "Loft", "shootingLocationSuggestions": []}]
    })
    client.aclose = AsyncMock()
    return client

