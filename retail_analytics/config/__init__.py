"""
Retail Order Analytics Engine
Configuration Module
"""
from .settings import (
    CatalogSettings,
    OrderSourceConfig,
    OrdersSettings,
    Settings,
    get_settings,
)

__all__ = [
    "CatalogSettings",
    "OrderSourceConfig",
    "OrdersSettings",
    "Settings",
    "get_settings",
]
