"""Collaboration services: capacity ledger, chat store, and the components built on them."""

from app.services.errors import (
    CapacityExhausted,
    ChatError,
    NotFound,
    PermissionDenied,
    SyncFailure,
    ValidationFailed,
)
from app.services.capacity_ledger import apply_decision, remove_participant
from app.services.chat_store import ChatRoomStore
from app.services.realtime import RealtimePublisher
from app.services.s3 import S3Service
from app.services.roster_sync import RosterSynchronizer
from app.services.message_ingestion import MessageIngestion
from app.services.read_tracker import ReadTracker
from app.services.chat_rooms import ChatRooms
from app.services.reconciliation import Reconciler

__all__ = [
    # Errors
    "CapacityExhausted",
    "ChatError",
    "NotFound",
    "PermissionDenied",
    "SyncFailure",
    "ValidationFailed",
    # Services
    "apply_decision",
    "remove_participant",
    "ChatRoomStore",
    "RealtimePublisher",
    "S3Service",
    "RosterSynchronizer",
    "MessageIngestion",
    "ReadTracker",
    "ChatRooms",
    "Reconciler",
]
