"""Backing stores for jobs, subscriptions and payments."""

from jobline.config import Settings

from .base import JobBoardStore
from .memory import MemoryStore


def create_store(settings: Settings) -> JobBoardStore:
    """Build the store selected by ``STORE_BACKEND``."""
    if settings.store_backend == "firestore":
        from .firestore import FirestoreStore

        return FirestoreStore(
            project=settings.firestore_project,
            service_account_path=settings.google_service_account_json,
        )
    return MemoryStore()


__all__ = ["JobBoardStore", "MemoryStore", "create_store"]
