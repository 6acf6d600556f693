"""
Prompt templates for every LLM-backed feature.

All builders are pure string construction so rendered prompts can be
compared against golden output in tests.
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, Sequence

from .store import ChatMessage, ThreadMeta

NO_SUMMARY_PLACEHOLDER = "(no summary available)"


def _escape_candidate_text(text: str) -> str:
    """Keep thread text from spoofing the candidate list layout.

    Collapses newlines (each candidate field is one line) and neutralizes fake
    ``[ID: ...]`` markers that could make the model cite a different thread.
    """
    if not text:
        return text
    flattened = " ".join(text.split())
    return re.sub(r"\[\s*ID\s*:", "[id ", flattened, flags=re.IGNORECASE)


def format_date(ms_epoch: int) -> str:
    """UTC calendar date (YYYY-MM-DD) of a millisecond timestamp."""
    return datetime.fromtimestamp(ms_epoch / 1000, tz=timezone.utc).strftime("%Y-%m-%d")


# ============================================================================
# Chat finder rerank
# ============================================================================

RERANK_PROMPT = """You are a chat search assistant. The user is looking for a past chat conversation.

User query: "{query}"

Here are the candidate chats to consider:

{candidates}

Your task:
1. Analyze which chats best match what the user is looking for
2. Return the top {top_k} most relevant matches (or fewer if there aren't enough good matches)
3. For each match, provide:
   - chatId: the ID from [ID: xxx]
   - confidence: a score from 0 to 1 indicating how well it matches
   - why: a single short sentence explaining why this chat matches

Order results by relevance (best match first).
If none of the candidates seem relevant to the query, return an empty results array.
Be selective: only include chats that genuinely seem to match what the user is looking for."""


def build_rerank_prompt(query: str, candidates: Sequence[ThreadMeta], top_k: int) -> str:
    """Render the rerank prompt for ``candidates`` (already lexically ranked)."""
    blocks = []
    for i, candidate in enumerate(candidates, start=1):
        summary = _escape_candidate_text(candidate.summary or "") or NO_SUMMARY_PLACEHOLDER
        blocks.append(
            f"{i}. [ID: {candidate.id}]\n"
            f"   Title: {_escape_candidate_text(candidate.title)}\n"
            f"   Summary: {summary}\n"
            f"   Last updated: {format_date(candidate.updated_at)}"
        )
    return RERANK_PROMPT.format(query=query, candidates="\n\n".join(blocks), top_k=top_k)


# ============================================================================
# Retrieval intent classification
# ============================================================================

_STRICT_NOTE = (
    'STRICT MODE: Be conservative. Only return "retrieve_chat" if the user is explicitly asking '
    "to find or open a past chat conversation."
)

_EXTRA_STRICT_NOTE = (
    "EXTRA STRICT MODE: The user is mid-conversation. Be VERY conservative. Only return "
    '"retrieve_chat" if the user is UNAMBIGUOUSLY asking to locate or open a DIFFERENT, PAST chat '
    "conversation. If there's any chance they're asking a question within the current chat, "
    'return "normal_chat".'
)

INTENT_PROMPT = """You are a strict intent classifier for a chat application. Your job is to determine if the user wants to retrieve/open a past chat conversation, or if they're making a normal chat request.

{strictness_note}

RULES:
1. Return "retrieve_chat" ONLY if the user is EXPLICITLY asking to:
   - Find a previous conversation ("find my chat about...", "where's our discussion on...")
   - Open a past chat ("open the conversation where we discussed...")
   - Locate a specific historical exchange ("show me the chat from last week about...")

2. Return "normal_chat" for:
   - Questions seeking information ("what is...", "how do I...", "tell me about...")
   - Requests for help or assistance ("help me with...", "can you explain...")
   - Any ambiguous message that COULD be a question
   - Greetings, small talk, or casual conversation
   - Commands or requests to DO something (not FIND something)

3. When in doubt, ALWAYS return "normal_chat". False positives are worse than false negatives.

4. If you return "retrieve_chat", provide a rewrittenQuery that extracts the key search terms (topics, keywords, approximate timeframe if mentioned) for finding the chat.

Session context:
- Is empty session (no messages yet): {is_empty_session}
- Is mid-chat (ongoing conversation): {is_mid_chat}

User message:
"{message}"

Analyze the message and return your classification."""


def build_intent_prompt(message: str, is_empty_session: bool, is_mid_chat: bool) -> str:
    return INTENT_PROMPT.format(
        strictness_note=_EXTRA_STRICT_NOTE if is_mid_chat else _STRICT_NOTE,
        is_empty_session=str(is_empty_session).lower(),
        is_mid_chat=str(is_mid_chat).lower(),
        message=message,
    )


# ============================================================================
# Summaries
# ============================================================================


def build_transcript(messages: Sequence[ChatMessage], max_messages: int, max_chars_per_message: int) -> str:
    """Compact ``ROLE: text`` transcript of the most recent messages."""
    lines = []
    for message in list(messages)[-max_messages:]:
        text = message.text
        if len(text) > max_chars_per_message:
            text = text[:max_chars_per_message] + "…"
        lines.append(f"{message.role.upper()}: {text}")
    return "\n".join(lines)


def build_thread_summary_prompt(transcript: str) -> str:
    return f"""Summarize the following conversation in 1-2 sentences. Focus on the main topic discussed and any key outcomes or conclusions.

Conversation:
{transcript}

Summary:"""


BRANCH_SUMMARY_INSTRUCTIONS = "You are a concise summarizer. Output only bullet points, nothing else."

BRANCH_SUMMARY_PROMPT = """Summarize the following conversation into 3-5 short bullet points.
Focus on:
- Key decisions made
- Important facts discovered
- Conclusions reached

Be extremely concise. No fluff. Plain text only.
Format as bullet points starting with "•"."""


def build_branch_summary_prompt(messages: Sequence[Dict[str, str]], max_bullets: int) -> str:
    transcript = "\n\n".join(
        f"{'User' if message['role'] == 'user' else 'Assistant'}: {message['text']}" for message in messages
    )
    return f"{BRANCH_SUMMARY_PROMPT}\n\nLimit to {max_bullets} bullets maximum.\n\nConversation:\n{transcript}"


# ============================================================================
# Chained chat
# ============================================================================

CHAT_INSTRUCTIONS = (
    "You are a helpful, concise assistant. Keep responses brief and focused. "
    "Avoid lengthy explanations unless specifically asked for detail. Be direct and practical."
)


# ============================================================================
# Smart stacks categorization
# ============================================================================

CATEGORIZATION_PROMPT = """You are a chat organizer. Analyze each conversation and categorize it.

Categories (choose exactly one per chat):
- professional: Work-related but NOT coding. Project planning, documents, spreadsheets, meetings, business strategy.
- coding: Programming, debugging, technical implementation, code review, software development.
- short_qa: Quick question/answer exchanges that resemble search queries. Brief, factual questions.
- personal: Health, hobbies, creative writing, art, life admin, relationships, journaling.
- travel: Trip planning, destinations, bookings, itineraries, packing, transportation.
- shopping: Product research, buying decisions, price comparisons, reviews, purchases.

For each chat:
1. Assign the most appropriate category
2. Write a concise title (max 60 chars) that captures the main topic
3. Write a 1-2 sentence summary of what was discussed

{chats}

Return one entry per chat, using the exact chatId given above."""


def build_categorization_prompt(chats: Sequence[Dict[str, Any]]) -> str:
    """Render the categorization prompt.

    Args:
        chats: Dicts with chat_id, current_title, created_at, message_count
            and transcript_snippet
    """
    blocks = []
    for i, chat in enumerate(chats, start=1):
        created = datetime.fromtimestamp(chat["created_at"] / 1000, tz=timezone.utc)
        blocks.append(
            f"### Chat {i}\n"
            f"- ID: {chat['chat_id']}\n"
            f"- Current Title: \"{chat['current_title']}\"\n"
            f"- Messages: {chat['message_count']}\n"
            f"- Created: {created.isoformat(timespec='milliseconds').replace('+00:00', 'Z')}\n"
            f"\n"
            f"Transcript (last messages):\n"
            f"{chat['transcript_snippet']}\n"
        )
    return CATEGORIZATION_PROMPT.format(chats="\n---\n".join(blocks))
