"""Tests for the in-memory thread store."""

import pytest

from chat_recall.store import CATEGORIES, ChatMessage, MemoryThreadStore


@pytest.fixture
def store():
    return MemoryThreadStore()


@pytest.mark.asyncio
async def test_create_and_get(store):
    created = await store.create_thread("u1", title="Trip planning")

    fetched = await store.get_thread("u1", created.id)
    assert fetched.title == "Trip planning"
    assert fetched.category == "recent"
    assert fetched.messages == []


@pytest.mark.asyncio
async def test_users_are_isolated(store):
    created = await store.create_thread("u1")

    assert await store.get_thread("u2", created.id) is None
    assert await store.list_threads("u2") == []


@pytest.mark.asyncio
async def test_list_is_newest_first(store):
    old = await store.create_thread("u1", title="old", updated_at=1_000)
    new = await store.create_thread("u1", title="new", updated_at=2_000)

    assert [t.id for t in await store.list_threads("u1")] == [new.id, old.id]


@pytest.mark.asyncio
async def test_append_message_tracks_response_id(store):
    thread = await store.create_thread("u1", updated_at=1_000)
    await store.append_message("u1", thread.id, ChatMessage(id="m1", role="user", text="hi"))
    await store.append_message(
        "u1", thread.id, ChatMessage(id="m2", role="assistant", text="hello", response_id="resp_1")
    )

    fetched = await store.get_thread("u1", thread.id)
    assert [m.id for m in fetched.messages] == ["m1", "m2"]
    assert fetched.last_response_id == "resp_1"
    assert fetched.updated_at > 1_000


@pytest.mark.asyncio
async def test_update_only_allowed_fields(store):
    thread = await store.create_thread("u1")

    await store.update_thread("u1", thread.id, title="Renamed", category="travel", summary="s")
    fetched = await store.get_thread("u1", thread.id)
    assert (fetched.title, fetched.category, fetched.summary) == ("Renamed", "travel", "s")

    with pytest.raises(ValueError):
        await store.update_thread("u1", thread.id, id="hijack")


@pytest.mark.asyncio
async def test_update_rejects_unknown_category(store):
    thread = await store.create_thread("u1")
    with pytest.raises(ValueError):
        await store.update_thread("u1", thread.id, category="gardening")


@pytest.mark.asyncio
async def test_returned_threads_are_copies(store):
    thread = await store.create_thread("u1", title="original")
    fetched = await store.get_thread("u1", thread.id)
    fetched.title = "mutated"

    assert (await store.get_thread("u1", thread.id)).title == "original"


@pytest.mark.asyncio
async def test_delete(store):
    thread = await store.create_thread("u1")
    await store.delete_thread("u1", thread.id)
    await store.delete_thread("u1", "missing")

    assert await store.get_thread("u1", thread.id) is None


@pytest.mark.asyncio
async def test_stacks_meta_counts_every_category(store):
    await store.create_thread("u1")
    await store.create_thread("u1", category="coding")

    meta = await store.get_stacks_meta("u1")
    assert set(meta.counts) == set(CATEGORIES)
    assert meta.counts["recent"] == 1
    assert meta.counts["coding"] == 1
    assert meta.last_refresh_at is None

    await store.set_last_stacks_refresh_at("u1", 123)
    meta = await store.get_stacks_meta("u1")
    assert meta.model_dump(by_alias=True)["lastRefreshAt"] == 123
