"""Tests for Location, Ref and Collection addressing."""

import asyncio
import json

import pytest

from conduit import (
    App,
    AppConfig,
    ConduitError,
    InvalidLocationError,
    Location,
    MemberKind,
    MemoryHandler,
    Ref,
    UnsupportedOperationError,
    field,
)


class RecordingHandler:
    """Operation handler that records every call and delegates to a MemoryHandler."""

    def __init__(self, data=None):
        self.store = MemoryHandler(data)
        self.calls = []

    def __getattr__(self, name):
        target = getattr(self.store, name)

        def record(request):
            self.calls.append((name, request))
            return target(request)

        return record


def make_app(data=None):
    handler = RecordingHandler(data)
    return App(AppConfig(connector="LOCAL", op_handlers=handler)), handler


class TestLocation:
    """Tests for Location."""

    def test_child_sets_id_then_path(self):
        location = Location("users").child("alice").child("profile").child("name")
        assert location.id == "alice"
        assert location.path == ("profile", "name")
        assert location.key == "users.alice.profile.name"

    def test_segments_are_strings(self):
        assert Location("items").child(3).child(0).segments == ("items", "3", "0")

    def test_parse(self):
        location = Location.parse("users.alice.profile")
        assert location == Location("users", "alice", ("profile",))
        assert Location.parse("users") == Location("users")
        with pytest.raises(InvalidLocationError):
            Location.parse("")

    def test_to_request(self):
        assert Location("users", "alice", ("a", "b")).to_request() == {
            "collection": "users",
            "id": "alice",
            "path": ["a", "b"],
        }


class TestRef:
    """Tests for lazy references."""

    def test_accumulation_sends_nothing(self):
        """Building a reference performs no operations."""
        app, handler = make_app()
        ref = app.db.users.alice.profile.name
        assert isinstance(ref, Ref)
        assert ref.key == "users.alice.profile.name"
        assert handler.calls == []

    def test_accumulation_is_pure(self):
        """Extending a reference leaves the original unchanged."""
        app, _ = make_app()
        base = app.db.users.alice
        deeper = base.profile
        assert base.key == "users.alice"
        assert deeper.key == "users.alice.profile"
        assert base["settings"].key == "users.alice.settings"
        assert base.child("a", "b").key == "users.alice.a.b"

    def test_deep_set_issues_one_set(self):
        """Setting collection.id.a.b to 5 sends one set with the path."""
        app, handler = make_app()
        assert asyncio.run(app.db["collection"].id.a.b.set(5)) is True
        assert handler.calls == [
            ("set", {"collection": "collection", "id": "id", "path": ["a", "b"], "value": 5})
        ]
        assert handler.store.get({"collection": "collection", "id": "id"}) == {
            "id": "id",
            "a": {"b": 5},
        }

    def test_resolve(self):
        app, handler = make_app({"users": {"alice": {"profile": {"name": "Alice"}}}})
        assert asyncio.run(app.db.users.alice.profile.name.resolve()) == "Alice"
        assert handler.calls == [
            ("get", {"collection": "users", "id": "alice", "path": ["profile", "name"]})
        ]

    def test_delete_field(self):
        app, handler = make_app({"users": {"alice": {"age": 3, "name": "A"}}})
        assert asyncio.run(app.db.users.alice.age.delete()) is True
        assert handler.store.get({"collection": "users", "id": "alice"}) == {
            "id": "alice",
            "name": "A",
        }

    def test_assignment_is_rejected(self):
        """Attribute assignment would not reach the server; it raises with a hint."""
        app, _ = make_app()
        ref = app.db.users.alice
        with pytest.raises(AttributeError, match="set"):
            ref.age = 3
        with pytest.raises(AttributeError, match="delete"):
            del ref.age

    def test_private_names_are_not_segments(self):
        app, _ = make_app()
        with pytest.raises(AttributeError):
            app.db.users.alice._hidden

    def test_collection_level_ref_cannot_resolve(self):
        app, _ = make_app()
        ref = Ref(app, Location("users"))
        with pytest.raises(InvalidLocationError):
            asyncio.run(ref.resolve())
        with pytest.raises(ConduitError):
            ref.subscribe(lambda value: None)

    def test_subscribe_queues_get_subscription(self):
        """Subscribing before the socket is open queues one get message."""
        app, handler = make_app()
        app.session.replace("tok", "u1")
        unsubscribe = app.db.users.alice.name.subscribe(lambda value: None)

        assert len(app.multiplexer.queue) == 1
        message = json.loads(app.multiplexer.queue[0])
        assert message == {
            "operation": "get",
            "eventName": "users.alice.name",
            "collection": "users",
            "id": "alice",
            "path": ["name"],
            "authorization": "Bearer tok",
        }
        assert handler.calls == []

        unsubscribe()
        assert app.multiplexer.queue == []


class TestCollectionLookup:
    """Tests for the operation-then-address lookup on collections."""

    def test_operation_names_resolve_to_operations(self):
        app, _ = make_app()
        member = app.db.users.member("get")
        assert member.kind is MemberKind.OPERATION
        assert callable(member.value)

    def test_other_names_resolve_to_addresses(self):
        app, _ = make_app()
        member = app.db.users.member("alice")
        assert member.kind is MemberKind.ADDRESS
        assert member.value.key == "users.alice"

    def test_item_access_is_always_an_address(self):
        """A document whose id clashes with an operation is reachable by item."""
        app, _ = make_app({"users": {"get": {"name": "Getter"}}})
        assert app.db.users["get"].key == "users.get"
        assert asyncio.run(app.db.users["get"].name.resolve()) == "Getter"

    def test_database_caches_collections(self):
        app, _ = make_app()
        assert app.db.users is app.db["users"] is app.db.collection("users")
        assert app.db.users.collection_name == "users"


class TestCollectionOperations:
    """Tests for collection operations through the local connector."""

    DATA = {
        "users": {
            "alice": {"name": "Alice", "age": 34},
            "bob": {"name": "Bob", "age": 17},
            "carol": {"name": "Carol", "age": 52},
        }
    }

    def test_get_set_has_delete(self):
        app, _ = make_app(self.DATA)
        users = app.db.users

        async def run():
            assert await users.get("alice") == {"id": "alice", "name": "Alice", "age": 34}
            assert await users.set("dave", {"name": "Dave"}) is True
            assert await users.has("dave") is True
            assert await users.delete("dave") is True
            assert await users.has("dave") is False
            assert await users.get("nobody") is None

        asyncio.run(run())

    def test_collection_wide_reads(self):
        app, _ = make_app(self.DATA)
        users = app.db.users

        async def run():
            assert await users.keys() == ["alice", "bob", "carol"]
            assert await users.size() == 3
            assert await users.length() == 3
            assert [d["name"] for d in await users.get_all()] == ["Alice", "Bob", "Carol"]
            assert [d["id"] for d in await users.slice(1, 2)] == ["bob"]
            assert await users.map(field("name")) == ["Alice", "Bob", "Carol"]
            assert (await users.find(field("age") < 18))["name"] == "Bob"
            assert await users.find(field("age") > 100) is None
            assert [doc_id for doc_id, _ in await users.entries()] == ["alice", "bob", "carol"]
            assert len(await users.values()) == 3
            assert [doc["id"] async for doc in users] == ["alice", "bob", "carol"]

        asyncio.run(run())

    def test_for_each(self):
        app, _ = make_app(self.DATA)
        seen = []
        asyncio.run(app.db.users.for_each(lambda doc: seen.append(doc["id"])))
        assert seen == ["alice", "bob", "carol"]

    def test_push_and_clear(self):
        app, _ = make_app()
        users = app.db.users

        async def run():
            doc_id = await users.push({"name": "Eve"})
            assert isinstance(doc_id, str) and doc_id
            assert (await users.get(doc_id))["name"] == "Eve"
            assert await users.clear() is True
            assert await users.size() == 0

        asyncio.run(run())

    def test_local_store_rejects_source_text(self):
        app, _ = make_app(self.DATA)
        with pytest.raises(UnsupportedOperationError):
            asyncio.run(app.db.users.find("doc => doc.age > 1"))
