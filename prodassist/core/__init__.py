"""
ProdAssist Core Module

Configuration, constants, exceptions, and logging.
"""

from .config import Settings, get_settings
from .constants import ArcSection, SectionSpec, SECTION_SPECS
from .exceptions import *
from .logging_config import setup_logging, get_logger, LogLevel
