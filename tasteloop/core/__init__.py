"""Core module containing the taste engine and domain types."""

from tasteloop.core.contracts import (
    Domain,
    FeedbackEvent,
    FeedbackStore,
    HistoryEntry,
    InferenceCapability,
    InferenceProposal,
    InvalidInputError,
    LocalHistoryStore,
    Polarity,
    PreferencesStore,
    PreferenceVector,
    RemoteHistorySource,
    StoredPreferences,
    TasteProfile,
    TasteSummary,
)
from tasteloop.core.signals import SignalShape, classify_signal, extract_field_tokens, extract_tokens
from tasteloop.core.aggregation import AggregatedSignals, aggregate_domain, aggregate_preferences
from tasteloop.core.history import load_merged_history, merge_history
from tasteloop.core.local_history import InMemoryLocalHistoryStore, JsonFileLocalHistoryStore
from tasteloop.core.uniqueness import filter_eligible, get_item_id, needs_more
from tasteloop.core.taste import analyze_taste, build_taste_summary
from tasteloop.core.refinement import (
    PreferenceUpdateCoordinator,
    RefinementOutcome,
    RefinementQueue,
    merge_preferences,
)
from tasteloop.core.engine import TasteEngine

__all__ = [
    # Contracts/Types
    "Domain",
    "Polarity",
    "FeedbackEvent",
    "HistoryEntry",
    "PreferenceVector",
    "TasteProfile",
    "TasteSummary",
    "StoredPreferences",
    "InferenceProposal",
    "InvalidInputError",
    "FeedbackStore",
    "PreferencesStore",
    "RemoteHistorySource",
    "LocalHistoryStore",
    "InferenceCapability",
    # Signals and aggregation
    "SignalShape",
    "classify_signal",
    "extract_tokens",
    "extract_field_tokens",
    "AggregatedSignals",
    "aggregate_preferences",
    "aggregate_domain",
    # History and uniqueness
    "merge_history",
    "load_merged_history",
    "InMemoryLocalHistoryStore",
    "JsonFileLocalHistoryStore",
    "filter_eligible",
    "needs_more",
    "get_item_id",
    # Taste
    "analyze_taste",
    "build_taste_summary",
    # Refinement
    "PreferenceUpdateCoordinator",
    "RefinementOutcome",
    "RefinementQueue",
    "merge_preferences",
    # Facade
    "TasteEngine",
]
