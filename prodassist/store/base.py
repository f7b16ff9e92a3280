"""
Document store interface.

The arc document is the single shared mutable resource of a session. All
writes are shallow merges of whole sections with no version check, so the
last writer wins.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional

from prodassist.core.constants import DEFAULT_ARC_EPISODE_COUNT
from prodassist.aggregation.normalizers import as_dict, as_list

ChangeCallback = Callable[[Optional[Dict[str, Any]]], None]
Unsubscribe = Callable[[], Awaitable[None]]


def merge_sections(
    document: Optional[Dict[str, Any]],
    sections: Dict[str, Any],
    actor_id: Optional[str]
) -> Dict[str, Any]:
    """Replace each named section of a document and stamp the write."""
    merged = dict(document or {})
    merged.update(sections)
    merged["lastUpdated"] = int(time.time() * 1000)
    merged["lastUpdatedBy"] = actor_id
    return merged


def get_episode_range_for_arc(story_bible: Optional[Dict[str, Any]], arc_index: int) -> List[int]:
    """
    Episode numbers (1-based) belonging to an arc of the story bible.

    Each narrative arc contributes the number of episodes it lists; an arc
    that lists none counts as DEFAULT_ARC_EPISODE_COUNT episodes. Returns an
    empty list when the bible has no such arc.
    """
    arcs = as_list(as_dict(story_bible).get("narrativeArcs"))
    if arc_index < 0 or arc_index >= len(arcs):
        return []

    def episode_count(arc: Any) -> int:
        return len(as_list(as_dict(arc).get("episodes"))) or DEFAULT_ARC_EPISODE_COUNT

    start = sum(episode_count(arc) for arc in arcs[:arc_index]) + 1
    return list(range(start, start + episode_count(arcs[arc_index])))


def new_arc_document(
    doc_id: str,
    owner_id: str,
    series_id: str,
    arc_index: int,
    arc_title: str,
    episode_numbers: List[int]
) -> Dict[str, Any]:
    """A fresh arc document with no section data."""
    now = int(time.time() * 1000)
    return {
        "id": doc_id,
        "userId": owner_id,
        "storyBibleId": series_id,
        "type": "arc",
        "arcIndex": arc_index,
        "arcTitle": arc_title,
        "episodeNumbers": list(episode_numbers),
        "collaborators": [],
        "generationStatus": "not_started",
        "createdAt": now,
        "lastUpdated": now,
    }


class DocumentStore(ABC):
    """Read, write and subscribe access to pre-production documents."""

    @abstractmethod
    async def get_story_bible(self, series_id: str, owner_id: str) -> Optional[Dict[str, Any]]:
        """Load the series (story) bible, or None if it does not exist."""

    @abstractmethod
    async def get_episode_document(
        self,
        owner_id: str,
        series_id: str,
        episode_number: int
    ) -> Optional[Dict[str, Any]]:
        """Load one episode's pre-production document, or None."""

    @abstractmethod
    async def get_arc_document(self, owner_id: str, series_id: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Load an arc document, or None."""

    @abstractmethod
    async def create_arc_document(self, document: Dict[str, Any]) -> Dict[str, Any]:
        """Persist a new arc document and return it."""

    @abstractmethod
    async def update(
        self,
        doc_id: str,
        sections: Dict[str, Any],
        actor_id: Optional[str],
        series_id: str
    ) -> None:
        """Shallow-merge sections into an arc document (see merge_sections)."""

    @abstractmethod
    async def delete_arc_document(self, owner_id: str, series_id: str, doc_id: str) -> None:
        """Remove an arc document."""

    @abstractmethod
    async def subscribe(
        self,
        owner_id: str,
        series_id: str,
        doc_id: str,
        on_change: ChangeCallback
    ) -> Unsubscribe:
        """
        Watch an arc document.

        on_change receives the current document right away and again after
        every change; it receives None when the document is deleted.
        """

    async def close(self) -> None:
        """Release connections held by the store."""
