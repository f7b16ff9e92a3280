"""
Clients for external services.
"""

from .generation_client import GenerationClient, StreamEvent, extract_error_message, parse_sse_line
