"""
Database module for the Add-on Calculation Engine.
"""

from addon_billing.db.connection import (
    build_engine,
    dispose_engine,
    get_engine,
    get_session_maker,
    init_models,
    live_service,
)

__all__ = [
    "build_engine",
    "get_engine",
    "get_session_maker",
    "live_service",
    "init_models",
    "dispose_engine",
]
