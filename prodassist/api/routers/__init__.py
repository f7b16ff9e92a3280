"""API routers for ProdAssist."""

from prodassist.api.routers import arcs, sse

__all__ = ["arcs", "sse"]
