"""Storage module for database operations."""

from tasteloop.storage.adapters import SqlFeedbackStore, SqlPreferencesStore, SqlRemoteHistory
from tasteloop.storage.db import Base, close_engine, create_tables, get_engine, get_session_factory
from tasteloop.storage.json_utils import safe_json_dumps, safe_json_loads
from tasteloop.storage.models import Event, HistoryRecord, ItemFeedback, StoredPreference
from tasteloop.storage.remote_history import HttpRemoteHistory, RemoteHistoryError
from tasteloop.storage.repo_events import EventsRepo, event_to_dict
from tasteloop.storage.repo_feedback import FeedbackRepo
from tasteloop.storage.repo_history import HistoryRepo
from tasteloop.storage.repo_preferences import PreferencesRepo

__all__ = [
    # Database
    "Base",
    "get_engine",
    "get_session_factory",
    "create_tables",
    "close_engine",
    # JSON utilities
    "safe_json_dumps",
    "safe_json_loads",
    # Models
    "ItemFeedback",
    "HistoryRecord",
    "StoredPreference",
    "Event",
    # Repositories
    "FeedbackRepo",
    "HistoryRepo",
    "PreferencesRepo",
    "EventsRepo",
    "event_to_dict",
    # Protocol adapters
    "SqlFeedbackStore",
    "SqlPreferencesStore",
    "SqlRemoteHistory",
    "HttpRemoteHistory",
    "RemoteHistoryError",
]
