"""
Arc sessions: per-arc load sequencing, automatic triggers and the write path.
"""

from .arc_session import ArcSession, SessionFlags, SessionManager, SessionPhase
