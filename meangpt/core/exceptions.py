"""Exceptions raised inside the orchestration core."""


class MeanGPTError(Exception):
    """Base class for core errors."""


class ConversationNotFound(MeanGPTError):
    """An append referenced a conversation id that was never created."""

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation {conversation_id} not found")


class RoutingClassificationError(MeanGPTError):
    """The routing classifier failed or returned an unusable verdict."""


class AggregationSynthesisError(MeanGPTError):
    """The synthesis provider could not produce an answer."""


class StorageUnavailable(MeanGPTError):
    """Stored state for a conversation could not be read."""

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Storage unavailable for conversation {conversation_id}")
