"""
ProdAssist - Arc Pre-Production Planning Service

Folds per-episode pre-production documents (casting, equipment, permits,
locations) into arc-wide summaries, derives location cost rollups, and
sequences LLM-backed generation runs behind a FastAPI service.

Version: 1.0.0
"""

__version__ = "1.0.0"
__project__ = "ProdAssist"

from pathlib import Path

from prodassist.core.env_loader import ensure_env_loaded
ensure_env_loaded()

# Package root directory
PACKAGE_ROOT = Path(__file__).parent
PROJECT_ROOT = PACKAGE_ROOT.parent
