"""Database models and bootstrap helpers."""

from .db_models import Base, EntryModel, PendingTransferModel, ProcessingJobModel

__all__ = [
    "Base",
    "EntryModel",
    "PendingTransferModel",
    "ProcessingJobModel",
]
