"""ariachat - streaming turn client for the Aria runtime."""

from .bootstrap import build_orchestrator
from .config import AriaSettings, load_settings
from .turns import TurnOrchestrator

__version__ = "0.1.0"

__all__ = ["AriaSettings", "TurnOrchestrator", "build_orchestrator", "load_settings"]
