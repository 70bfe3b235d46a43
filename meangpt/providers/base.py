"""Base provider interface for AI model providers."""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Dict, Any

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Message:
    """A message in a conversation. Never mutated once appended to a history."""
    role: str  # "system", "user", "assistant"
    content: str
    timestamp: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        timestamp = data.get("timestamp")
        content = data.get("content", "")
        return cls(
            role=data["role"],
            content=content if isinstance(content, str) else str(content),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else None,
        )


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static identification of a configured provider."""
    id: str
    display_name: str
    model: str


@dataclass
class ProviderResponse:
    """Outcome of a single provider call. Failures carry ``error`` and empty content."""
    descriptor: ProviderDescriptor
    content: str = ""
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)
    tokens_used: Optional[int] = None

    @property
    def ok(self) -> bool:
        return bool(self.content) and not self.error


@dataclass
class SendOptions:
    """Sampling options for a provider call."""
    temperature: float = 0.7
    max_tokens: int = 4000
    stream: bool = False


class BaseProvider(ABC):
    """
    Abstract base class for AI providers.

    ``send_message`` never raises: every failure is collapsed into a
    ProviderResponse with an empty body and a populated ``error``.
    """

    # Provider identification
    provider_name: str = "base"
    display_name: str = "Base"
    default_model: str = ""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, **kwargs):
        self.api_key = api_key
        self.model = model or self.default_model
        self.kwargs = kwargs

    @property
    def descriptor(self) -> ProviderDescriptor:
        return ProviderDescriptor(
            id=self.provider_name,
            display_name=self.display_name,
            model=self.model,
        )

    def get_descriptor(self) -> ProviderDescriptor:
        return self.descriptor

    def is_available(self) -> bool:
        """Check if this provider is configured."""
        return bool(self.api_key)

    async def send_message(
        self,
        messages: List[Message],
        options: Optional[SendOptions] = None,
    ) -> ProviderResponse:
        """Send a conversation and return the provider's answer or its error."""
        options = options or SendOptions()
        try:
            return await self._send(messages, options)
        except Exception as e:
            return self.handle_error(e)

    @abstractmethod
    async def _send(self, messages: List[Message], options: SendOptions) -> ProviderResponse:
        """Perform the vendor call. May raise; ``send_message`` converts errors."""
        pass

    def count_tokens(self, messages: List[Message]) -> int:
        """Cheap length-based estimate, roughly four characters per token."""
        text = " ".join(m.content for m in messages)
        return math.ceil(len(text) / 4)

    def handle_error(self, error: Exception) -> ProviderResponse:
        logger.error(f"Error from {self.display_name}: {error}")
        return ProviderResponse(
            descriptor=self.descriptor,
            content="",
            error=str(error) or "Unknown error occurred",
        )

    def format_messages(self, messages: List[Message]) -> List[Dict[str, str]]:
        """Format messages for the provider's API."""
        return [{"role": msg.role, "content": msg.content} for msg in messages]

    async def aclose(self) -> None:
        """Close the transport client if one was created."""
        client = getattr(self, "_client", None)
        if client is None:
            return
        self._client = None
        # httpx clients expose aclose(); the vendor SDK clients expose close()
        if hasattr(client, "aclose"):
            await client.aclose()
        else:
            await client.close()

    @staticmethod
    def split_system(messages: List[Message]) -> tuple:
        """Separate system text from the conversational turns."""
        system = "\n\n".join(m.content for m in messages if m.role == "system")
        rest = [m for m in messages if m.role != "system"]
        return (system or None), rest
