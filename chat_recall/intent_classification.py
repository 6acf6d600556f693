"""Retrieval-intent classification for incoming chat messages.

Decides whether a message asks to find/open a *past* chat (route it to the
finder) or is a normal chat turn. The classifier is deliberately strict:
false positives hijack a normal conversation, false negatives only cost the
user a rephrase.
"""

import logging
from typing import Literal

from pydantic import BaseModel, Field

from .llm_client import ModelDispatcher
from .prompts import build_intent_prompt
from .request_config import RequestKind

logger = logging.getLogger(__name__)

INTENT_SCHEMA_NAME = "intent_classification"


class IntentContext(BaseModel):
    isEmptySession: bool
    isMidChat: bool


class IntentOutput(BaseModel):
    intent: Literal["retrieve_chat", "normal_chat"] = Field(
        description=(
            "The detected intent: 'retrieve_chat' if user explicitly wants to find/open a past chat, "
            "'normal_chat' otherwise"
        )
    )
    confidence: float = Field(ge=0, le=1, description="Confidence score from 0 to 1")
    rewrittenQuery: str = Field(
        description=(
            "If intent is 'retrieve_chat', a rewritten search query optimized for finding the chat. "
            "Empty string if normal_chat."
        )
    )


async def classify_intent(dispatcher: ModelDispatcher, message: str, context: IntentContext) -> IntentOutput:
    """Classify ``message``; ``rewrittenQuery`` is always "" for normal chat.

    Raises:
        DispatchError: Backend rejection or unparseable output
    """
    prompt = build_intent_prompt(message, context.isEmptySession, context.isMidChat)
    outcome = await dispatcher.create_parsed_response(
        RequestKind.INTENT,
        prompt,
        schema=IntentOutput,
        schema_name=INTENT_SCHEMA_NAME,
    )
    parsed: IntentOutput = outcome.unwrap().parsed

    result = IntentOutput(
        intent=parsed.intent,
        confidence=parsed.confidence,
        rewrittenQuery=parsed.rewrittenQuery if parsed.intent == "retrieve_chat" else "",
    )
    logger.debug(f"[intent] Classified as '{result.intent}' (confidence={result.confidence:.2f})")
    return result


__all__ = ["IntentContext", "IntentOutput", "classify_intent"]
