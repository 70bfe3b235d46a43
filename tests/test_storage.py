"""Tests for durable conversation storage and read-through rehydration."""

import pytest
from unittest.mock import AsyncMock, MagicMock
from meangpt.core.aggregator import ResponseAggregator
from meangpt.core.context_manager import ContextManager, RoutingDecision
from meangpt.core.exceptions import StorageUnavailable
from meangpt.core.orchestrator import Orchestrator
from meangpt.core.router import Router
from meangpt.db.storage import ConversationStorage
from meangpt.providers.base import Message, utcnow


class TestConversationStorage:
    """Tests for the storage collaborator."""

    @pytest.mark.asyncio
    async def test_provider_context_round_trip(self, storage):
        """Saved contexts reload as an identical ordered list."""
        messages = [
            Message(role="system", content="Previous context summary: Topics discussed: a"),
            Message(role="user", content="What is 2+2?", timestamp=utcnow()),
            Message(role="assistant", content="4", timestamp=utcnow()),
        ]
        await storage.save_provider_context("c1", "openai", messages)

        loaded = await storage.load_provider_context("c1", "openai")
        assert loaded == messages

    @pytest.mark.asyncio
    async def test_load_absent_context(self, storage):
        assert await storage.load_provider_context("missing", "openai") == []
        assert await storage.load_provider_contexts("missing") == {}
        assert await storage.load_master("missing") == ([], [])

    @pytest.mark.asyncio
    async def test_save_overwrites(self, storage):
        await storage.save_provider_context("c1", "grok", [Message(role="user", content="one")])
        await storage.save_provider_context("c1", "grok", [Message(role="user", content="two")])

        loaded = await storage.load_provider_context("c1", "grok")
        assert [m.content for m in loaded] == ["two"]

    @pytest.mark.asyncio
    async def test_contexts_are_keyed_by_provider(self, storage):
        await storage.save_provider_context("c1", "openai", [Message(role="user", content="o")])
        await storage.save_provider_context("c1", "gemini", [Message(role="user", content="g")])
        await storage.save_provider_context("c2", "openai", [Message(role="user", content="other")])

        contexts = await storage.load_provider_contexts("c1")
        assert set(contexts) == {"openai", "gemini"}
        assert contexts["gemini"][0].content == "g"

    @pytest.mark.asyncio
    async def test_master_and_routing_log(self, storage):
        messages = [Message(role="user", content="hi"), Message(role="assistant", content="hello")]
        await storage.save_master("c1", messages)
        await storage.append_routing_decision("c1", {"decision": "forward_all", "reason": "first"})
        await storage.append_routing_decision("c1", {"decision": "direct_reply", "reason": "self"})

        loaded, decisions = await storage.load_master("c1")
        assert loaded == messages
        assert [d["decision"] for d in decisions] == ["forward_all", "direct_reply"]

    @pytest.mark.asyncio
    async def test_exists_and_delete(self, storage):
        assert await storage.conversation_exists("c1") is False
        await storage.save_provider_context("c1", "openai", [Message(role="user", content="x")])
        assert await storage.conversation_exists("c1") is True

        await storage.delete_conversation("c1")
        assert await storage.conversation_exists("c1") is False
        assert await storage.load_provider_context("c1", "openai") == []


class TestRehydration:
    """Tests for the context manager's read-through cache."""

    @pytest.mark.asyncio
    async def test_rehydrates_after_restart(self, storage):
        cm = ContextManager(storage=storage)
        cm.create_conversation("c1")
        await cm.add_message("c1", Message(role="user", content="What is the capital of France?"))
        await cm.record_routing_decision("c1", "What is the capital of France?", RoutingDecision(True, "first"))
        await cm.add_provider_message("c1", "anthropic", Message(role="user", content="What is the capital of France?"))
        await cm.add_provider_message("c1", "anthropic", Message(role="assistant", content="Paris"))
        await cm.add_message("c1", Message(role="assistant", content="## Mean Answer\nParis"))

        restarted = ContextManager(storage=storage)
        assert restarted.get_conversation("c1") is None

        conversation = await restarted.load_conversation("c1")

        original = cm.get_conversation("c1")
        assert conversation.messages == original.messages
        assert conversation.provider_contexts["anthropic"] == original.provider_contexts["anthropic"]
        assert conversation.provider_contexts["openai"] == []
        assert [e["decision"] for e in conversation.routing_log] == ["forward_all"]

    @pytest.mark.asyncio
    async def test_provider_context_rehydrated_on_demand(self, storage):
        cm = ContextManager(storage=storage)
        cm.create_conversation("c1")
        await cm.add_provider_message("c1", "grok", Message(role="user", content="hi"))

        restarted = ContextManager(storage=storage)
        context = await restarted.get_context_for_provider("c1", "grok", include_system_prompt=False)
        assert context == [Message(role="user", content="hi")]

    @pytest.mark.asyncio
    async def test_unknown_conversation_not_rehydrated(self, storage):
        cm = ContextManager(storage=storage)
        assert await cm.load_conversation("missing") is None

    @pytest.mark.asyncio
    async def test_delete_removes_stored_state(self, storage):
        cm = ContextManager(storage=storage)
        cm.create_conversation("c1")
        await cm.add_message("c1", Message(role="user", content="hi"))
        await cm.delete_conversation("c1")

        assert await ContextManager(storage=storage).load_conversation("c1") is None


class TestPersistenceFailures:
    """Write errors are logged, never raised to the caller."""

    @pytest.fixture
    def broken_storage(self):
        storage = MagicMock()
        for name in (
            "save_provider_context", "save_master", "append_routing_decision",
            "load_created_at", "load_master", "load_provider_contexts",
        ):
            setattr(storage, name, AsyncMock(side_effect=RuntimeError("disk full")))
        return storage

    @pytest.mark.asyncio
    async def test_appends_survive_storage_errors(self, broken_storage, caplog):
        cm = ContextManager(storage=broken_storage)
        cm.create_conversation("c1")

        await cm.add_message("c1", Message(role="user", content="hi"))
        await cm.add_provider_message("c1", "openai", Message(role="user", content="hi"))
        await cm.record_routing_decision("c1", "hi", RoutingDecision(True, "first"))

        conversation = cm.get_conversation("c1")
        assert len(conversation.messages) == 1
        assert len(conversation.provider_contexts["openai"]) == 1
        assert "disk full" in caplog.text


class FlakyStorage(ConversationStorage):
    """Storage whose first reads fail, as with a briefly locked database."""

    def __init__(self, session_factory, failures=1):
        super().__init__(session_factory)
        self.failures = failures

    async def load_created_at(self, conversation_id):
        if self.failures:
            self.failures -= 1
            raise RuntimeError("database is locked")
        return await super().load_created_at(conversation_id)


class TestReadFailures:
    """A failed read must never be mistaken for a new conversation."""

    @pytest.fixture
    async def seeded(self, storage):
        cm = ContextManager(storage=storage)
        cm.create_conversation("c1")
        for i in range(4):
            role = "user" if i % 2 == 0 else "assistant"
            await cm.add_message("c1", Message(role=role, content=f"m{i}"))
        await cm.add_provider_message("c1", "grok", Message(role="user", content="m0"))
        return storage

    @pytest.mark.asyncio
    async def test_load_failure_raises(self, seeded):
        cm = ContextManager(storage=FlakyStorage(seeded.session_factory))

        with pytest.raises(StorageUnavailable) as exc_info:
            await cm.load_conversation("c1")

        assert exc_info.value.conversation_id == "c1"
        assert cm.get_conversation("c1") is None

    @pytest.mark.asyncio
    async def test_stored_history_survives_failed_load(self, seeded, make_provider):
        router = Router(
            ContextManager(storage=FlakyStorage(seeded.session_factory)),
            Orchestrator({"grok": make_provider("grok", reply="answer")}),
            ResponseAggregator(),
            default_provider="grok",
        )

        with pytest.raises(StorageUnavailable):
            await router.process_message("c1", "next question")

        messages, _ = await seeded.load_master("c1")
        assert [m.content for m in messages] == ["m0", "m1", "m2", "m3"]
        grok_context = await seeded.load_provider_context("c1", "grok")
        assert [m.content for m in grok_context] == ["m0"]

        # Once storage recovers the turn continues the stored conversation
        result = await router.process_message("c1", "next question")

        assert "first message" not in result.routing.reason.lower()
        messages, _ = await seeded.load_master("c1")
        assert [m.content for m in messages[:5]] == ["m0", "m1", "m2", "m3", "next question"]
        assert len(messages) == 6


class TestConversationMetadata:
    """Tests for creation time and explicitly started conversations."""

    @pytest.mark.asyncio
    async def test_rehydrated_conversation_keeps_created_at(self, storage):
        cm = ContextManager(storage=storage)
        cm.create_conversation("c1")
        await cm.add_message("c1", Message(role="user", content="hi"))
        stored_created_at = await storage.load_created_at("c1")

        conversation = await ContextManager(storage=storage).load_conversation("c1")

        assert conversation.created_at == stored_created_at
        assert conversation.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_load_created_at_absent(self, storage):
        assert await storage.load_created_at("missing") is None

    @pytest.mark.asyncio
    async def test_started_conversation_is_persisted(self, storage):
        conversation = await ContextManager(storage=storage).start_conversation()

        assert await storage.conversation_exists(conversation.id) is True
        restarted = await ContextManager(storage=storage).load_conversation(conversation.id)
        assert restarted is not None
        assert restarted.messages == []
