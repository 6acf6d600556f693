"""Local lexical candidate generation for the chat finder.

Stage one of the two-stage search: a cheap token-overlap score over thread
titles and summaries, plus a small recency boost, used to pick a bounded set
of candidates for the LLM rerank (stage two, see ``finder``).
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from . import config
from .store import ThreadMeta, now_ms

logger = logging.getLogger(__name__)

# Anything that is not [A-Za-z0-9_] or whitespace becomes a separator
_NON_WORD = re.compile(r"[^\w\s]", re.ASCII)

TITLE_WEIGHT = 3
SUMMARY_WEIGHT = 1
RECENCY_BOOST = 0.5
RECENCY_WINDOW_MS = 7 * 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class ScoredCandidate:
    thread: ThreadMeta
    score: float


def tokenize(text: str) -> List[str]:
    """Lowercase, strip punctuation, split on whitespace, drop 1-char tokens."""
    return [token for token in _NON_WORD.sub(" ", text.lower()).split() if len(token) > 1]


def compute_lexical_score(query: str, thread: ThreadMeta, now: int) -> float:
    """Score one thread against the query.

    Title matches count three times a summary match; duplicates in the
    thread text count each time, duplicates in the query do not. Threads
    updated strictly less than a week before ``now`` get +0.5.
    """
    query_tokens = set(tokenize(query))
    if not query_tokens:
        return 0.0

    title_matches = sum(1 for token in tokenize(thread.title or "") if token in query_tokens)
    summary_matches = sum(1 for token in tokenize(thread.summary or "") if token in query_tokens)
    match_score = TITLE_WEIGHT * title_matches + SUMMARY_WEIGHT * summary_matches

    recency_boost = RECENCY_BOOST if now - thread.updated_at < RECENCY_WINDOW_MS else 0.0
    return match_score + recency_boost


def score_candidates(threads: Sequence[ThreadMeta], query: str, now: Optional[int] = None) -> List[ScoredCandidate]:
    """Score and rank every thread; ties keep input order."""
    if now is None:
        now = now_ms()
    scored = [ScoredCandidate(thread=thread, score=compute_lexical_score(query, thread, now)) for thread in threads]
    # list.sort is stable
    scored.sort(key=lambda c: c.score, reverse=True)
    return scored


def select_top_candidates(
    threads: Sequence[ThreadMeta], query: str, max_candidates: int, now: Optional[int] = None
) -> List[ThreadMeta]:
    """Return the ``max_candidates`` best threads by lexical score.

    The clock is read once for the whole batch so recency boosts are
    consistent across threads.
    """
    limit = min(max_candidates, config.MAX_CANDIDATES_CAP)
    scored = score_candidates(threads, query, now)
    selected = [candidate.thread for candidate in scored[: max(limit, 0)]]
    logger.debug(
        "[finder] Lexical selection: %d threads -> %d candidates (limit=%d, top_score=%.1f)",
        len(threads),
        len(selected),
        limit,
        scored[0].score if scored else 0.0,
    )
    return selected


def resolve_max_candidates(requested: Optional[int] = None) -> int:
    """Request value, else env default, else hardcoded default; always capped."""
    value = requested if requested is not None else config.CHAT_FINDER_MAX_CANDIDATES
    return min(value, config.MAX_CANDIDATES_CAP)


def resolve_top_k() -> int:
    return min(config.CHAT_FINDER_TOPK, config.MAX_TOPK_CAP)


__all__ = [
    "RECENCY_WINDOW_MS",
    "ScoredCandidate",
    "compute_lexical_score",
    "resolve_max_candidates",
    "resolve_top_k",
    "score_candidates",
    "select_top_candidates",
    "tokenize",
]
