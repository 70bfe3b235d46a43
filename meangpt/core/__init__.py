# Core orchestration module
from .exceptions import (
    MeanGPTError,
    ConversationNotFound,
    RoutingClassificationError,
    AggregationSynthesisError,
    StorageUnavailable,
)
from .context_manager import ContextManager, Conversation, ConversationStore, RoutingDecision
from .orchestrator import Orchestrator, AggregatedResult
from .aggregator import ResponseAggregator
from .router import Router, TurnResult
from .app_context import AppContext, build_app_context

__all__ = [
    "MeanGPTError",
    "ConversationNotFound",
    "RoutingClassificationError",
    "AggregationSynthesisError",
    "StorageUnavailable",
    "ContextManager",
    "Conversation",
    "ConversationStore",
    "RoutingDecision",
    "Orchestrator",
    "AggregatedResult",
    "ResponseAggregator",
    "Router",
    "TurnResult",
    "AppContext",
    "build_app_context",
]
