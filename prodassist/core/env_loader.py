"""
Centralized environment variable loading for ProdAssist.

Loads the project's .env once so pydantic settings and the Supabase client
see the same values regardless of which entry point started the process.

Usage:
    from prodassist.core.env_loader import ensure_env_loaded
    ensure_env_loaded()
"""

from pathlib import Path

from dotenv import load_dotenv

_env_loaded = False


def get_project_root() -> Path:
    """Get the project root directory (where .env is located)."""
    # This file is at prodassist/core/env_loader.py
    return Path(__file__).parent.parent.parent


def ensure_env_loaded(override: bool = False) -> bool:
    """
    Ensure environment variables from .env are loaded.

    Args:
        override: If True, .env values replace variables already set in the
                  process environment

    Returns:
        True if .env was loaded, False if already loaded or file not found
    """
    global _env_loaded

    if _env_loaded:
        return False

    env_path = get_project_root() / ".env"

    if not env_path.exists():
        _env_loaded = True
        return False

    load_dotenv(env_path, override=override)
    _env_loaded = True
    return True


def is_env_loaded() -> bool:
    """Check whether the .env file has already been processed."""
    return _env_loaded
