"""
External service clients for the Deal Desk engine.
"""

from .catalog import Catalog, SqlCatalog, StaticCatalog
from .database import DatabaseClient
from .openai_client import OpenAIClient

__all__ = [
    'Catalog',
    'SqlCatalog',
    'StaticCatalog',
    'DatabaseClient',
    'OpenAIClient',
]
