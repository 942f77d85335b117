"""
Flat File Access Module
"""
from .providers import (
    FlatFileProvider,
    HttpFlatFileProvider,
    LocalFlatFileProvider,
    MemoryFlatFileProvider,
    create_provider,
)

__all__ = [
    "FlatFileProvider",
    "HttpFlatFileProvider",
    "LocalFlatFileProvider",
    "MemoryFlatFileProvider",
    "create_provider",
]
