"""Tests for the parallel fan-out orchestrator."""

import time
import pytest
from unittest.mock import AsyncMock, MagicMock
from meangpt.core.orchestrator import AggregatedResult, Orchestrator
from meangpt.providers.base import Message, ProviderDescriptor, ProviderResponse, SendOptions


QUESTION = [Message(role="user", content="What is the capital of France?")]


@pytest.fixture
def providers(make_provider):
    return {
        "openai": make_provider("openai", reply="Paris", display_name="ChatGPT"),
        "anthropic": make_provider("anthropic", reply="Paris, France", display_name="Claude"),
        "gemini": make_provider("gemini", error="connection refused", display_name="Gemini"),
    }


class TestOrchestrator:
    """Tests for Orchestrator."""

    def test_available_providers(self, providers):
        orchestrator = Orchestrator(providers)
        assert orchestrator.get_available_providers() == ["openai", "anthropic", "gemini"]
        assert orchestrator.get_provider("openai") is providers["openai"]
        assert orchestrator.get_provider("grok") is None

    def test_single_configured_provider(self, make_provider):
        orchestrator = Orchestrator({"grok": make_provider("grok", reply="hi")})
        assert orchestrator.get_available_providers() == ["grok"]

    @pytest.mark.asyncio
    async def test_query_all_one_response_per_provider(self, providers):
        orchestrator = Orchestrator(providers)
        result = await orchestrator.query_all(QUESTION)

        assert isinstance(result, AggregatedResult)
        assert [r.descriptor.id for r in result.responses] == ["openai", "anthropic", "gemini"]
        assert result.responses[0].content == "Paris"
        assert result.responses[2].error == "connection refused"
        assert result.responses[2].content == ""

    @pytest.mark.asyncio
    async def test_query_subset_preserves_requested_order(self, providers):
        orchestrator = Orchestrator(providers)
        result = await orchestrator.query_all(QUESTION, provider_ids=["gemini", "openai"])

        assert [r.descriptor.id for r in result.responses] == ["gemini", "openai"]
        assert providers["anthropic"].calls == []

    @pytest.mark.asyncio
    async def test_unconfigured_provider_gets_error_response(self, providers):
        orchestrator = Orchestrator(providers)
        result = await orchestrator.query_all(QUESTION, provider_ids=["openai", "grok"])

        assert len(result.responses) == 2
        grok = result.responses[1]
        assert grok.descriptor.id == "grok"
        assert grok.error == "Provider grok not configured"

    @pytest.mark.asyncio
    async def test_raising_provider_does_not_cancel_siblings(self, make_provider):
        exploding = MagicMock()
        exploding.descriptor = ProviderDescriptor(id="grok", display_name="Grok", model="grok-2-1212")
        exploding.send_message = AsyncMock(side_effect=RuntimeError("boom"))
        slow = make_provider("openai", reply="Paris", delay=0.05)

        orchestrator = Orchestrator({"grok": exploding, "openai": slow})
        result = await orchestrator.query_all(QUESTION)

        assert result.responses[0].error == "boom"
        assert result.responses[0].descriptor.display_name == "Grok"
        assert result.responses[1].content == "Paris"

    @pytest.mark.asyncio
    async def test_calls_run_concurrently(self, make_provider):
        providers = {
            name: make_provider(name, reply="ok", delay=0.2)
            for name in ("openai", "anthropic", "gemini", "grok")
        }
        orchestrator = Orchestrator(providers)

        started = time.monotonic()
        result = await orchestrator.query_all(QUESTION)
        elapsed = time.monotonic() - started

        assert len(result.responses) == 4
        assert elapsed < 0.6

    @pytest.mark.asyncio
    async def test_options_are_passed_through(self, providers):
        orchestrator = Orchestrator(providers)
        options = SendOptions(temperature=0.2, max_tokens=100)
        await orchestrator.query_all(QUESTION, provider_ids=["openai"], options=options)

        messages, sent_options = providers["openai"].calls[0]
        assert messages == QUESTION
        assert sent_options is options

    @pytest.mark.asyncio
    async def test_query_single(self, providers):
        orchestrator = Orchestrator(providers)
        response = await orchestrator.query_single("anthropic", QUESTION)
        assert response.content == "Paris, France"

    @pytest.mark.asyncio
    async def test_all_fail(self, make_provider):
        providers = {
            name: make_provider(name, error="network down")
            for name in ("openai", "anthropic", "gemini", "grok")
        }
        result = await Orchestrator(providers).query_all(QUESTION)
        assert len(result.responses) == 4
        assert all(r.error == "network down" for r in result.responses)


class TestSummaries:
    """Tests for per-provider previews."""

    def _response(self, provider_id, content="", error=None):
        return ProviderResponse(
            descriptor=ProviderDescriptor(id=provider_id, display_name=provider_id, model="m"),
            content=content,
            error=error,
        )

    def test_create_summaries(self):
        summary = Orchestrator.create_summaries([
            self._response("openai", "Paris"),
            self._response("anthropic", "x" * 250),
            self._response("gemini", error="timeout"),
            self._response("grok"),
        ])

        assert summary["openai"] == "Paris"
        assert summary["anthropic"] == "x" * 197 + "..."
        assert len(summary["anthropic"]) == 200
        assert summary["gemini"] == "Error: timeout"
        assert "grok" not in summary

    @pytest.mark.asyncio
    async def test_result_carries_summaries(self, providers):
        result = await Orchestrator(providers).query_all(QUESTION)
        assert result.summary["openai"] == "Paris"
        assert result.summary["gemini"] == "Error: connection refused"

    @pytest.mark.asyncio
    async def test_to_dict(self, providers):
        result = await Orchestrator(providers).query_all(QUESTION, provider_ids=["openai"])
        data = result.to_dict()
        assert data["responses"][0]["provider"] == "openai"
        assert data["responses"][0]["display_name"] == "ChatGPT"
        assert data["responses"][0]["tokens_used"] == 12
        assert data["mean_answer"] is None
