"""
In-memory repositories.
"""
from .sync_repository import InMemorySyncHistoryRepository, InMemorySyncJobRepository

__all__ = [
    "InMemorySyncJobRepository",
    "InMemorySyncHistoryRepository",
]
