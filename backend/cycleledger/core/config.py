"""
Settings import shim.

Modules import ``settings`` from here; the implementation lives in
``cycleledger.core.settings``.
"""
from cycleledger.core.settings import Settings, get_settings, settings

__all__ = ["Settings", "get_settings", "settings"]
