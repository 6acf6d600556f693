"""Tests for thread and branch summaries."""

import pytest

from chat_recall.exceptions import DispatchError, ThreadNotFoundError
from chat_recall.store import ChatMessage, MemoryThreadStore
from chat_recall.summaries import get_or_generate_summary, summarize_branch

from conftest import api_error, text_response


@pytest.fixture
def store():
    return MemoryThreadStore()


async def _thread_with_messages(store, count=3, **initial):
    messages = [
        ChatMessage(id=f"m{i}", role="user" if i % 2 == 0 else "assistant", text=f"message {i}") for i in range(count)
    ]
    return await store.create_thread("u1", messages=messages, **initial)


@pytest.mark.asyncio
async def test_unknown_thread(store, dispatcher):
    with pytest.raises(ThreadNotFoundError):
        await get_or_generate_summary(store, dispatcher, "u1", "missing")


@pytest.mark.asyncio
async def test_existing_summary_is_returned(store, dispatcher, fake_client):
    thread = await _thread_with_messages(store, summary="Already summarized")

    result = await get_or_generate_summary(store, dispatcher, "u1", thread.id)

    assert result.summary == "Already summarized"
    assert result.generated is False
    fake_client.responses.create.assert_not_called()


@pytest.mark.asyncio
async def test_empty_thread_skips_model(store, dispatcher, fake_client):
    thread = await store.create_thread("u1")

    result = await get_or_generate_summary(store, dispatcher, "u1", thread.id)

    assert result.summary == "No messages in this conversation."
    assert result.generated is True
    fake_client.responses.create.assert_not_called()


@pytest.mark.asyncio
async def test_generated_summary_is_saved(store, dispatcher, fake_client):
    fake_client.responses.create.return_value = text_response("  Planned a Paris trip.  ")
    thread = await _thread_with_messages(store)

    result = await get_or_generate_summary(store, dispatcher, "u1", thread.id)

    assert result.summary == "Planned a Paris trip."
    assert result.generated is True
    assert (await store.get_thread("u1", thread.id)).summary == "Planned a Paris trip."
    kwargs = fake_client.responses.create.call_args.kwargs
    assert kwargs["model"] == "gpt-5-nano"
    assert kwargs["store"] is False
    assert "USER: message 0" in kwargs["input"]


@pytest.mark.asyncio
async def test_empty_model_text_uses_placeholder(store, dispatcher, fake_client):
    fake_client.responses.create.return_value = text_response("")
    thread = await _thread_with_messages(store)

    result = await get_or_generate_summary(store, dispatcher, "u1", thread.id)

    assert result.summary == "Summary unavailable."


@pytest.mark.asyncio
async def test_backend_failure_is_not_masked(store, dispatcher, fake_client):
    fake_client.responses.create.side_effect = api_error(status=500, message="boom", code="server_error")
    thread = await _thread_with_messages(store)

    with pytest.raises(DispatchError):
        await get_or_generate_summary(store, dispatcher, "u1", thread.id)

    assert (await store.get_thread("u1", thread.id)).summary is None


@pytest.mark.asyncio
async def test_branch_summary(dispatcher, fake_client):
    fake_client.responses.create.return_value = text_response("- Chose Postgres\n")

    summary = await summarize_branch(
        dispatcher, [{"role": "user", "text": "Which DB?"}, {"role": "assistant", "text": "Postgres"}], max_bullets=2
    )

    assert summary == "- Chose Postgres"
    kwargs = fake_client.responses.create.call_args.kwargs
    assert kwargs["instructions"].startswith("You are a concise summarizer")
    assert "Limit to 2 bullets maximum." in kwargs["input"][0]["content"]


@pytest.mark.asyncio
async def test_empty_branch_skips_model(dispatcher, fake_client):
    assert await summarize_branch(dispatcher, []) == ""
    fake_client.responses.create.assert_not_called()
