# Database module
from .database import init_db, AsyncSessionLocal, Base
from .models import ConversationRecord, ProviderContextRecord
from .storage import ConversationStorage

__all__ = [
    "init_db",
    "AsyncSessionLocal",
    "Base",
    "ConversationRecord",
    "ProviderContextRecord",
    "ConversationStorage",
]
