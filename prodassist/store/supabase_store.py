"""
Supabase document store.

Pre-production documents live in one table with a JSONB payload column:

    preproduction(id text primary key, owner_id text, series_id text,
                  type text, episode_number int, data jsonb, updated_at timestamptz)

Story bibles live in their own table with the same id/owner_id/data shape.
Arc subscriptions use Supabase realtime postgres changes filtered on the row id.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from supabase import AsyncClient, acreate_client

from prodassist.core.config import Settings, get_settings
from prodassist.core.exceptions import ConfigurationError, DocumentNotFoundError, DocumentStoreError
from prodassist.core.logging_config import get_logger
from prodassist.store.base import ChangeCallback, DocumentStore, Unsubscribe, merge_sections

logger = get_logger("store.supabase")


def _row_document(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not row:
        return None
    document = dict(row.get("data") or {})
    document.setdefault("id", row.get("id"))
    return document


class SupabaseDocumentStore(DocumentStore):
    """DocumentStore backed by Supabase tables and realtime channels."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[AsyncClient] = None):
        self.settings = settings or get_settings()
        self._client = client

    async def _get_client(self) -> AsyncClient:
        if self._client is None:
            key = self.settings.supabase_service_key or self.settings.supabase_anon_key
            if not self.settings.supabase_url or not key:
                raise ConfigurationError("Supabase URL and key must be configured for the supabase store")
            self._client = await acreate_client(self.settings.supabase_url, key)
        return self._client

    def _table(self, client: AsyncClient, name: Optional[str] = None):
        return client.table(name or self.settings.preproduction_table)

    async def get_story_bible(self, series_id: str, owner_id: str) -> Optional[Dict[str, Any]]:
        client = await self._get_client()
        try:
            response = await (
                self._table(client, self.settings.story_bible_table)
                .select("*")
                .eq("id", series_id)
                .eq("owner_id", owner_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise DocumentStoreError(f"Failed to load story bible {series_id}: {e}")
        return _row_document(response.data[0] if response.data else None)

    async def get_episode_document(
        self,
        owner_id: str,
        series_id: str,
        episode_number: int
    ) -> Optional[Dict[str, Any]]:
        client = await self._get_client()
        try:
            response = await (
                self._table(client)
                .select("*")
                .eq("owner_id", owner_id)
                .eq("series_id", series_id)
                .eq("type", "episode")
                .eq("episode_number", episode_number)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise DocumentStoreError(f"Failed to load episode {episode_number}: {e}")
        return _row_document(response.data[0] if response.data else None)

    async def get_arc_document(self, owner_id: str, series_id: str, doc_id: str) -> Optional[Dict[str, Any]]:
        client = await self._get_client()
        try:
            response = await self._table(client).select("*").eq("id", doc_id).limit(1).execute()
        except Exception as e:
            raise DocumentStoreError(f"Failed to load arc {doc_id}: {e}")
        return _row_document(response.data[0] if response.data else None)

    async def create_arc_document(self, document: Dict[str, Any]) -> Dict[str, Any]:
        client = await self._get_client()
        row = {
            "id": document["id"],
            "owner_id": document.get("userId"),
            "series_id": document.get("storyBibleId"),
            "type": "arc",
            "data": document,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await self._table(client).insert(row).execute()
        except Exception as e:
            raise DocumentStoreError(f"Failed to create arc {document['id']}: {e}")
        logger.info(f"Created arc document {document['id']}")
        return document

    async def update(
        self,
        doc_id: str,
        sections: Dict[str, Any],
        actor_id: Optional[str],
        series_id: str
    ) -> None:
        client = await self._get_client()
        try:
            response = await self._table(client).select("data").eq("id", doc_id).limit(1).execute()
        except Exception as e:
            raise DocumentStoreError(f"Failed to read arc {doc_id} before update: {e}")
        if not response.data:
            raise DocumentNotFoundError(doc_id, self.settings.preproduction_table)

        merged = merge_sections(response.data[0].get("data"), sections, actor_id)
        try:
            await (
                self._table(client)
                .update({"data": merged, "updated_at": datetime.now(timezone.utc).isoformat()})
                .eq("id", doc_id)
                .execute()
            )
        except Exception as e:
            raise DocumentStoreError(f"Failed to update arc {doc_id}: {e}")
        logger.debug(f"Updated arc {doc_id}: {', '.join(sections) or '(no sections)'}")

    async def delete_arc_document(self, owner_id: str, series_id: str, doc_id: str) -> None:
        client = await self._get_client()
        try:
            await self._table(client).delete().eq("id", doc_id).eq("owner_id", owner_id).execute()
        except Exception as e:
            raise DocumentStoreError(f"Failed to delete arc {doc_id}: {e}")

    async def subscribe(
        self,
        owner_id: str,
        series_id: str,
        doc_id: str,
        on_change: ChangeCallback
    ) -> Unsubscribe:
        client = await self._get_client()

        def handle_change(payload: Dict[str, Any]) -> None:
            data = payload.get("data", payload)
            if data.get("type") == "DELETE":
                on_change(None)
                return
            on_change(_row_document(data.get("record")))

        channel = client.channel(f"arc-{doc_id}")
        channel.on_postgres_changes(
            "*",
            schema="public",
            table=self.settings.preproduction_table,
            filter=f"id=eq.{doc_id}",
            callback=handle_change,
        )
        await channel.subscribe()
        logger.info(f"Subscribed to arc document {doc_id}")

        on_change(await self.get_arc_document(owner_id, series_id, doc_id))

        async def unsubscribe() -> None:
            await client.remove_channel(channel)
            logger.info(f"Unsubscribed from arc document {doc_id}")

        return unsubscribe

    async def close(self) -> None:
        if self._client is not None:
            await self._client.remove_all_channels()
