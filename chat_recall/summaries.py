"""Thread and branch summaries.

Both go through the ``summarize`` request kind as plain text dispatches. An
empty-but-successful model answer is replaced by a fixed placeholder for
thread summaries; backend failures are never masked.
"""

import logging
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel

from . import config
from .exceptions import ThreadNotFoundError
from .llm_client import ModelDispatcher
from .prompts import (
    BRANCH_SUMMARY_INSTRUCTIONS,
    build_branch_summary_prompt,
    build_thread_summary_prompt,
    build_transcript,
)
from .request_config import RequestKind
from .store import ThreadStore

logger = logging.getLogger(__name__)


class ThreadSummary(BaseModel):
    chatId: str
    title: str
    category: str
    summary: str
    generated: bool


async def get_or_generate_summary(
    store: ThreadStore, dispatcher: ModelDispatcher, user_id: str, thread_id: str
) -> ThreadSummary:
    """Return the stored summary, generating and saving one if missing.

    Raises:
        ThreadNotFoundError: Unknown thread id for this user
        DispatchError: Backend failure while generating
    """
    thread = await store.get_thread(user_id, thread_id)
    if thread is None:
        raise ThreadNotFoundError(thread_id)

    if thread.summary:
        return ThreadSummary(
            chatId=thread_id, title=thread.title, category=thread.category, summary=thread.summary, generated=False
        )

    if not thread.messages:
        return ThreadSummary(
            chatId=thread_id,
            title=thread.title,
            category=thread.category,
            summary=config.SUMMARY_EMPTY_THREAD,
            generated=True,
        )

    transcript = build_transcript(
        thread.messages, config.SUMMARY_MAX_MESSAGES, config.SUMMARY_MAX_CHARS_PER_MESSAGE
    )
    logger.info("[summary] Generating summary for chat %s", thread_id[:8])
    outcome = await dispatcher.create_text_response(RequestKind.SUMMARIZE, build_thread_summary_prompt(transcript))
    summary = outcome.unwrap().text.strip()

    if not summary:
        logger.warning("[summary] Empty summary generated, using fallback")
        summary = config.SUMMARY_FALLBACK

    await store.update_thread(user_id, thread_id, summary=summary)
    return ThreadSummary(
        chatId=thread_id, title=thread.title, category=thread.category, summary=summary, generated=True
    )


async def summarize_branch(
    dispatcher: ModelDispatcher, messages: Sequence[Dict[str, str]], max_bullets: Optional[int] = None
) -> str:
    """Bullet-point summary of an in-flight conversation branch ("" if empty)."""
    if not messages:
        return ""
    bullets = max_bullets or config.DEFAULT_MAX_BULLETS
    prompt = build_branch_summary_prompt(messages, bullets)
    input_items: List[Dict[str, str]] = [{"role": "user", "content": prompt}]
    outcome = await dispatcher.create_text_response(
        RequestKind.SUMMARIZE, input_items, instructions=BRANCH_SUMMARY_INSTRUCTIONS
    )
    return outcome.unwrap().text.strip()


__all__ = ["ThreadSummary", "get_or_generate_summary", "summarize_branch"]
