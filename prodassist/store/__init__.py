"""
Document stores for story bibles, episode and arc pre-production documents.
"""

from typing import Optional

from prodassist.core.config import Settings, get_settings
from prodassist.core.exceptions import ConfigurationError
from .base import DocumentStore, get_episode_range_for_arc, merge_sections, new_arc_document
from .memory_store import InMemoryDocumentStore


def create_store(settings: Optional[Settings] = None) -> DocumentStore:
    """Build the document store selected by settings.store_backend."""
    settings = settings or get_settings()
    if settings.store_backend == "memory":
        return InMemoryDocumentStore()
    if settings.store_backend == "supabase":
        from .supabase_store import SupabaseDocumentStore
        return SupabaseDocumentStore(settings)
    raise ConfigurationError(f"Unknown store backend: {settings.store_backend}")
