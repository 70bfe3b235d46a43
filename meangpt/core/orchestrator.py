"""Parallel fan-out of one conversation to several providers."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from ..providers.base import (
    BaseProvider,
    Message,
    ProviderDescriptor,
    ProviderResponse,
    SendOptions,
    utcnow,
)

logger = logging.getLogger(__name__)

SUMMARY_PREVIEW_CHARS = 200


@dataclass
class AggregatedResult:
    """Outcome of one fan-out, optionally enriched with synthesized answers."""
    responses: List[ProviderResponse]
    summary: Dict[str, str] = field(default_factory=dict)
    mean_answer: Optional[str] = None
    best_answer: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict:
        return {
            "responses": [
                {
                    "provider": r.descriptor.id,
                    "display_name": r.descriptor.display_name,
                    "model": r.descriptor.model,
                    "content": r.content,
                    "error": r.error,
                    "tokens_used": r.tokens_used,
                    "timestamp": r.timestamp.isoformat(),
                }
                for r in self.responses
            ],
            "summary": self.summary,
            "mean_answer": self.mean_answer,
            "best_answer": self.best_answer,
            "timestamp": self.timestamp.isoformat(),
        }


class Orchestrator:
    """
    Fans a message out to a subset of providers.

    ``query_all`` waits for every call to settle. A failing or slow
    provider never cancels its siblings; it only contributes its own
    error-carrying response.
    """

    def __init__(self, providers: Dict[str, BaseProvider]):
        # Built once at startup from the credentials that were present
        self.providers = dict(providers)

    def get_available_providers(self) -> List[str]:
        return list(self.providers.keys())

    def get_provider(self, provider_id: str) -> Optional[BaseProvider]:
        return self.providers.get(provider_id)

    async def query_all(
        self,
        messages: List[Message],
        provider_ids: Optional[List[str]] = None,
        options: Optional[SendOptions] = None,
    ) -> AggregatedResult:
        """Query every requested provider concurrently; one response per provider, in order."""
        if provider_ids is None:
            provider_ids = self.get_available_providers()
        options = options or SendOptions()

        logger.info(f"Fanning out to {len(provider_ids)} providers: {', '.join(provider_ids)}")

        tasks = [self.query_single(pid, messages, options) for pid in provider_ids]
        settled = await asyncio.gather(*tasks, return_exceptions=True)

        responses: List[ProviderResponse] = []
        for provider_id, outcome in zip(provider_ids, settled):
            if isinstance(outcome, BaseException):
                logger.error(f"Provider {provider_id} raised during fan-out: {outcome}")
                outcome = self._error_response(provider_id, str(outcome) or "Unknown error")
            responses.append(outcome)

        failed = sum(1 for r in responses if r.error)
        if failed:
            logger.warning(f"{failed}/{len(responses)} providers failed")

        return AggregatedResult(
            responses=responses,
            summary=self.create_summaries(responses),
        )

    async def query_single(
        self,
        provider_id: str,
        messages: List[Message],
        options: Optional[SendOptions] = None,
    ) -> ProviderResponse:
        provider = self.providers.get(provider_id)
        if provider is None:
            return self._error_response(provider_id, f"Provider {provider_id} not configured")
        return await provider.send_message(messages, options)

    def _error_response(self, provider_id: str, error: str) -> ProviderResponse:
        provider = self.providers.get(provider_id)
        if provider is not None:
            descriptor = provider.descriptor
        else:
            descriptor = ProviderDescriptor(id=provider_id, display_name=provider_id, model="unknown")
        return ProviderResponse(descriptor=descriptor, content="", error=error)

    @staticmethod
    def create_summaries(responses: List[ProviderResponse]) -> Dict[str, str]:
        """Short per-provider preview of each answer, or its error."""
        summary: Dict[str, str] = {}
        for response in responses:
            if response.content:
                content = response.content
                if len(content) > SUMMARY_PREVIEW_CHARS:
                    content = content[:SUMMARY_PREVIEW_CHARS - 3] + "..."
                summary[response.descriptor.id] = content
            elif response.error:
                summary[response.descriptor.id] = f"Error: {response.error}"
        return summary
