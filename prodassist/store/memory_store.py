"""
In-memory document store.

Used for local development and tests. Subscribers are notified synchronously
after each write with a copy of the document.
"""

import copy
from typing import Any, Dict, List, Optional, Tuple

from prodassist.core.exceptions import DocumentNotFoundError
from prodassist.core.logging_config import get_logger
from prodassist.store.base import ChangeCallback, DocumentStore, Unsubscribe, merge_sections

logger = get_logger("store.memory")


class InMemoryDocumentStore(DocumentStore):
    """Dictionary-backed DocumentStore."""

    def __init__(self):
        self._story_bibles: Dict[str, Dict[str, Any]] = {}
        self._episodes: Dict[Tuple[str, str, int], Dict[str, Any]] = {}
        self._arcs: Dict[str, Dict[str, Any]] = {}
        self._subscribers: Dict[str, List[ChangeCallback]] = {}

    # Seeding -----------------------------------------------------------------

    def put_story_bible(self, series_id: str, story_bible: Dict[str, Any]) -> None:
        self._story_bibles[series_id] = copy.deepcopy(story_bible)

    def put_episode(self, owner_id: str, series_id: str, episode_number: int, document: Dict[str, Any]) -> None:
        self._episodes[(owner_id, series_id, episode_number)] = copy.deepcopy(document)

    def put_arc(self, document: Dict[str, Any]) -> None:
        self._arcs[document["id"]] = copy.deepcopy(document)
        self._notify(document["id"])

    # DocumentStore -----------------------------------------------------------

    async def get_story_bible(self, series_id: str, owner_id: str) -> Optional[Dict[str, Any]]:
        bible = self._story_bibles.get(series_id)
        return copy.deepcopy(bible) if bible is not None else None

    async def get_episode_document(
        self,
        owner_id: str,
        series_id: str,
        episode_number: int
    ) -> Optional[Dict[str, Any]]:
        document = self._episodes.get((owner_id, series_id, episode_number))
        return copy.deepcopy(document) if document is not None else None

    async def get_arc_document(self, owner_id: str, series_id: str, doc_id: str) -> Optional[Dict[str, Any]]:
        document = self._arcs.get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    async def create_arc_document(self, document: Dict[str, Any]) -> Dict[str, Any]:
        self.put_arc(document)
        logger.info(f"Created arc document {document['id']}")
        return copy.deepcopy(document)

    async def update(
        self,
        doc_id: str,
        sections: Dict[str, Any],
        actor_id: Optional[str],
        series_id: str
    ) -> None:
        if doc_id not in self._arcs:
            raise DocumentNotFoundError(doc_id, "arcs")
        self._arcs[doc_id] = merge_sections(self._arcs[doc_id], copy.deepcopy(sections), actor_id)
        logger.debug(f"Updated arc {doc_id}: {', '.join(sections) or '(no sections)'}")
        self._notify(doc_id)

    async def delete_arc_document(self, owner_id: str, series_id: str, doc_id: str) -> None:
        if self._arcs.pop(doc_id, None) is None:
            raise DocumentNotFoundError(doc_id, "arcs")
        self._notify(doc_id)

    async def subscribe(
        self,
        owner_id: str,
        series_id: str,
        doc_id: str,
        on_change: ChangeCallback
    ) -> Unsubscribe:
        self._subscribers.setdefault(doc_id, []).append(on_change)
        on_change(copy.deepcopy(self._arcs.get(doc_id)))

        async def unsubscribe() -> None:
            callbacks = self._subscribers.get(doc_id, [])
            if on_change in callbacks:
                callbacks.remove(on_change)

        return unsubscribe

    def subscriber_count(self, doc_id: str) -> int:
        return len(self._subscribers.get(doc_id, []))

    def _notify(self, doc_id: str) -> None:
        document = self._arcs.get(doc_id)
        for callback in list(self._subscribers.get(doc_id, [])):
            callback(copy.deepcopy(document))
