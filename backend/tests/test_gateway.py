"""Tests for the persistence gateway and key-value stores."""

import json
from typing import Optional

from gemchat.memory.gateway import PersistenceGateway
from gemchat.memory.store import InMemoryKeyValueStore, KeyValueStore
from gemchat.models.messages import Message, WebSource
from gemchat.models.prompts import QuickPrompt
from gemchat.models.sessions import ChatSession


class BrokenStore(KeyValueStore):
    """Store whose every operation fails, like an unreachable database."""

    def get(self, key: str) -> Optional[str]:
        raise ConnectionError("storage offline")

    def set(self, key: str, value: str) -> None:
        raise ConnectionError("storage offline")

    def delete(self, key: str) -> None:
        raise ConnectionError("storage offline")


def _session() -> ChatSession:
    reply = Message.from_bot("See the docs").model_copy(
        update={"sources": [WebSource(uri="https://example.com")]}
    )
    return ChatSession(id="s1", title="Docs", messages=[Message.from_user("Hi"), reply])


def test_sessions_round_trip(gateway: PersistenceGateway):
    session = _session()
    gateway.save_sessions([session])
    assert gateway.get_sessions() == [session]


def test_documents_use_prefixed_keys_and_camel_case(
    gateway: PersistenceGateway, store: InMemoryKeyValueStore
):
    gateway.save_sessions([_session()])
    gateway.set_active_id("s1")
    gateway.save_quick_prompts([QuickPrompt(title="t", text="x")])

    assert store.get("geminiActiveChatId") == "s1"
    assert store.get("geminiQuickPrompts") is not None
    document = json.loads(store.get("geminiChatSessions"))
    message = document[0]["messages"][1]
    assert message["isLoading"] is False
    assert message["sources"] == [
        {"uri": "https://example.com", "title": "https://example.com"}
    ]
    assert "lastUpdatedAt" in document[0]


def test_empty_prefix_uses_plain_keys(store: InMemoryKeyValueStore):
    gateway = PersistenceGateway(store, key_prefix="")
    gateway.set_active_id("s1")
    assert store.get("activeChatId") == "s1"


def test_clearing_active_id_deletes_key(
    gateway: PersistenceGateway, store: InMemoryKeyValueStore
):
    gateway.set_active_id("s1")
    gateway.set_active_id(None)
    assert store.get("geminiActiveChatId") is None
    assert gateway.get_active_id() is None


def test_missing_keys_read_as_empty(gateway: PersistenceGateway):
    assert gateway.get_sessions() == []
    assert gateway.get_active_id() is None
    assert gateway.get_quick_prompts() == []


def test_corrupt_document_reads_as_empty(
    gateway: PersistenceGateway, store: InMemoryKeyValueStore
):
    store.set("geminiChatSessions", "{not json")
    assert gateway.get_sessions() == []


def test_storage_failures_are_swallowed():
    gateway = PersistenceGateway(BrokenStore())

    gateway.save_sessions([_session()])
    gateway.set_active_id("s1")
    gateway.set_active_id(None)
    gateway.save_quick_prompts([])

    assert gateway.get_sessions() == []
    assert gateway.get_active_id() is None
    assert gateway.get_quick_prompts() == []


def test_in_memory_store_contract():
    store = InMemoryKeyValueStore()
    store.set("k", "v")
    assert store.get("k") == "v"
    store.delete("k")
    store.delete("k")
    assert store.get("k") is None
    assert store.ping()
