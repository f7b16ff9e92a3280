"""
ProdAssist Custom Exceptions

Exception classes for error handling throughout the arc pre-production service.
"""

from typing import Optional


class ProdAssistError(Exception):
    """Base exception for all ProdAssist errors."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================

class ConfigurationError(ProdAssistError):
    """Raised when there's an issue with configuration."""
    pass


# =============================================================================
# DOCUMENT STORE ERRORS
# =============================================================================

class DocumentStoreError(ProdAssistError):
    """Base exception for document store failures."""
    pass


class DocumentNotFoundError(DocumentStoreError):
    """Raised when a document does not exist."""

    def __init__(self, doc_id: str, collection: str = None):
        message = f"Document not found: '{doc_id}'"
        details = {"doc_id": doc_id}
        if collection:
            details["collection"] = collection
        super().__init__(message, details)


class ReferenceDataMissingError(DocumentStoreError):
    """Raised when the story bible or the arc's episode range cannot be resolved."""

    def __init__(self, series_id: str, reason: str):
        message = f"Reference data missing for series '{series_id}': {reason}"
        super().__init__(message, {"series_id": series_id, "reason": reason})


class EpisodeLoadError(DocumentStoreError):
    """Raised when a single episode document fails to load."""

    def __init__(self, episode_number: int, reason: str):
        message = f"Failed to load episode {episode_number}: {reason}"
        super().__init__(message, {"episode_number": episode_number})


# =============================================================================
# GENERATION ERRORS
# =============================================================================

class GenerationError(ProdAssistError):
    """Base exception for generation endpoint failures."""
    pass


class GenerationEndpointError(GenerationError):
    """Raised when a generation endpoint returns an error or cannot be reached."""

    def __init__(self, endpoint: str, message: str, status_code: Optional[int] = None):
        details = {"endpoint": endpoint}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status_code = status_code


class GenerationCancelledError(GenerationError):
    """Raised when a streaming generation is closed before it completed."""

    def __init__(self, endpoint: str):
        super().__init__(f"Generation cancelled: {endpoint}", {"endpoint": endpoint})
        self.endpoint = endpoint


# =============================================================================
# PIPELINE ERRORS
# =============================================================================

class PipelineError(ProdAssistError):
    """Base exception for generation pipeline errors."""
    pass


class InvalidStepTransitionError(PipelineError):
    """Raised when a generation step is moved to a state it cannot reach."""

    def __init__(self, step_id: str, current: str, target: str):
        message = f"Step '{step_id}' cannot move from {current} to {target}"
        super().__init__(message, {"step_id": step_id, "current": current, "target": target})


# =============================================================================
# LOCATION ERRORS
# =============================================================================

class LocationError(ProdAssistError):
    """Base exception for location group operations."""
    pass


class LocationGroupNotFoundError(LocationError):
    """Raised when a location group id is not present in the arc."""

    def __init__(self, group_id: str):
        super().__init__(f"Location group not found: '{group_id}'", {"group_id": group_id})


class InvalidSelectionError(LocationError):
    """Raised when a suggestion id does not belong to the group's suggestions."""

    def __init__(self, group_id: str, suggestion_id: str):
        message = f"Suggestion '{suggestion_id}' is not offered for location group '{group_id}'"
        super().__init__(message, {"group_id": group_id, "suggestion_id": suggestion_id})


class InvalidStatusError(LocationError):
    """Raised when a location status is not one of the known values."""

    def __init__(self, status: str, allowed: list):
        super().__init__(f"Invalid location status: '{status}'", {"allowed": allowed})


# =============================================================================
# SESSION ERRORS
# =============================================================================

class SessionError(ProdAssistError):
    """Raised when an arc session is used out of order."""
    pass
