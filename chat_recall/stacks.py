"""Smart Stacks: LLM categorization of a user's chats.

A refresh picks chats still in ``recent`` or touched since the last refresh,
sends compact transcripts in one structured call (``stacks`` kind), and
writes category/title/summary back to the store.
"""

import logging
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from . import config
from .llm_client import ModelDispatcher
from .prompts import build_categorization_prompt, build_transcript
from .request_config import RequestKind
from .store import ChatThread, ThreadStore, now_ms

logger = logging.getLogger(__name__)

CATEGORIZATION_SCHEMA_NAME = "categorization_result"


class ChatCategorization(BaseModel):
    chatId: str = Field(description="The unique ID of the chat")
    # "recent" is the uncategorized bucket, never a model answer
    category: Literal["professional", "coding", "short_qa", "personal", "travel", "shopping"] = Field(
        description="The category that best fits this conversation"
    )
    title: str = Field(description="A concise, descriptive title for the chat (max 60 chars)")
    summary: str = Field(description="A 1-2 sentence summary of the conversation topic and outcome")


class CategorizationOutput(BaseModel):
    chats: List[ChatCategorization]


class UpdatedChat(BaseModel):
    id: str
    category: str
    title: str
    summary: str


class StacksRefreshResult(BaseModel):
    message: str
    refreshedCount: int
    updatedChats: List[UpdatedChat] = Field(default_factory=list)
    counts: Dict[str, int]
    lastRefreshAt: int


async def _finish(store: ThreadStore, user_id: str, message: str, updated: List[UpdatedChat]) -> StacksRefreshResult:
    now = now_ms()
    await store.set_last_stacks_refresh_at(user_id, now)
    meta = await store.get_stacks_meta(user_id)
    return StacksRefreshResult(
        message=message, refreshedCount=len(updated), updatedChats=updated, counts=meta.counts, lastRefreshAt=now
    )


def _is_refresh_candidate(category: str, updated_at: int, last_refresh_at: Optional[int]) -> bool:
    return category == "recent" or (last_refresh_at is not None and updated_at > last_refresh_at)


async def refresh_stacks(store: ThreadStore, dispatcher: ModelDispatcher, user_id: str) -> StacksRefreshResult:
    """Categorize chats that need it.

    Raises:
        DispatchError: Backend rejection or unparseable categorization
    """
    meta = await store.get_stacks_meta(user_id)
    threads = await store.list_threads(user_id)

    candidate_ids = [
        thread.id for thread in threads if _is_refresh_candidate(thread.category, thread.updated_at, meta.last_refresh_at)
    ][: config.STACKS_MAX_CHATS]
    if not candidate_ids:
        return await _finish(store, user_id, "No chats to refresh", [])

    full_threads: List[ChatThread] = []
    for thread_id in candidate_ids:
        thread = await store.get_thread(user_id, thread_id)
        if thread is not None and thread.messages:
            full_threads.append(thread)
    if not full_threads:
        return await _finish(store, user_id, "No chats with messages to refresh", [])

    payloads = [
        {
            "chat_id": thread.id,
            "current_title": thread.title,
            "created_at": thread.created_at,
            "message_count": len(thread.messages),
            "transcript_snippet": build_transcript(
                thread.messages, config.STACKS_MAX_MESSAGES, config.STACKS_MAX_CHARS_PER_MESSAGE
            ),
        }
        for thread in full_threads
    ]

    logger.info(
        "[stacks] Processing %d chats with model %s",
        len(full_threads),
        dispatcher.config_for(RequestKind.STACKS).model,
    )
    outcome = await dispatcher.create_parsed_response(
        RequestKind.STACKS,
        build_categorization_prompt(payloads),
        schema=CategorizationOutput,
        schema_name=CATEGORIZATION_SCHEMA_NAME,
    )
    parsed: CategorizationOutput = outcome.unwrap().parsed
    logger.info("[stacks] Got %d categorizations", len(parsed.chats))

    known_ids = {thread.id for thread in full_threads}
    updated: List[UpdatedChat] = []
    for result in parsed.chats:
        if result.chatId not in known_ids:
            logger.warning("[stacks] Unknown chatId in response: %s", result.chatId)
            continue
        await store.update_thread(
            user_id, result.chatId, category=result.category, title=result.title, summary=result.summary
        )
        updated.append(
            UpdatedChat(id=result.chatId, category=result.category, title=result.title, summary=result.summary)
        )

    return await _finish(store, user_id, f"Refreshed {len(updated)} chats", updated)


__all__ = ["CategorizationOutput", "ChatCategorization", "StacksRefreshResult", "refresh_stacks"]
