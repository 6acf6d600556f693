"""Chat finder: lexical candidates -> LLM rerank -> joined, ranked options.

Stage two of the search. The rerank contract is a pydantic schema handed to
the Responses API as a structured-output format, so anything that reaches
``assemble_options`` has already been validated for presence, types and the
[0, 1] confidence bound.
"""

import logging
from typing import Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .llm_client import ModelDispatcher
from .prompts import build_rerank_prompt
from .request_config import RequestKind
from .retrieval import resolve_max_candidates, resolve_top_k, select_top_candidates
from .store import ThreadMeta

logger = logging.getLogger(__name__)

RERANK_SCHEMA_NAME = "rerank_results"


class RerankResult(BaseModel):
    chatId: str = Field(description="The ID of the matching chat")
    confidence: float = Field(
        ge=0, le=1, description="Confidence score from 0 to 1 that this chat matches the query"
    )
    why: str = Field(description="A single short sentence explaining why this chat matches")


class RerankOutput(BaseModel):
    results: List[RerankResult] = Field(description="Top matching chats, ordered by relevance/confidence")


class FinderOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    chatId: str
    title: str
    summary: str
    updatedAt: int
    confidence: float
    why: str


class FindResult(BaseModel):
    query: str
    options: List[FinderOption] = Field(default_factory=list)


def assemble_options(
    rerank_results: Sequence[RerankResult], candidate_by_id: Mapping[str, ThreadMeta]
) -> List[FinderOption]:
    """Join rerank results onto candidate metadata.

    Results naming a chat that was not sent to the model are dropped. The
    model is asked to pre-sort, but the list is re-sorted by confidence
    (stable, descending) regardless.
    """
    options: List[FinderOption] = []
    for result in rerank_results:
        chat = candidate_by_id.get(result.chatId)
        if chat is None:
            logger.warning("[finder] Model returned unknown chatId: %s", result.chatId)
            continue
        options.append(
            FinderOption(
                chatId=chat.id,
                title=chat.title,
                summary=chat.summary or "",
                updatedAt=chat.updated_at,
                confidence=result.confidence,
                why=result.why,
            )
        )

    options.sort(key=lambda option: option.confidence, reverse=True)
    return options


async def find_chats(
    dispatcher: ModelDispatcher,
    threads: Sequence[ThreadMeta],
    query: str,
    max_candidates: Optional[int] = None,
    top_k: Optional[int] = None,
    now: Optional[int] = None,
) -> FindResult:
    """Run the two-stage search over ``threads``.

    Returns an empty option list, without calling the model, when there are
    no threads or no candidates.

    Raises:
        DispatchError: Backend rejection or unparseable rerank output
    """
    if not threads:
        return FindResult(query=query, options=[])

    limit = resolve_max_candidates(max_candidates)
    candidates = select_top_candidates(threads, query, limit, now=now)
    if not candidates:
        return FindResult(query=query, options=[])

    resolved_top_k = top_k if top_k is not None else resolve_top_k()
    prompt = build_rerank_prompt(query, candidates, resolved_top_k)

    logger.info(
        "[finder] Reranking %d candidates with model %s",
        len(candidates),
        dispatcher.config_for(RequestKind.FINDER).model,
    )

    outcome = await dispatcher.create_parsed_response(
        RequestKind.FINDER,
        prompt,
        schema=RerankOutput,
        schema_name=RERANK_SCHEMA_NAME,
    )
    parsed: RerankOutput = outcome.unwrap().parsed

    candidate_by_id: Dict[str, ThreadMeta] = {candidate.id: candidate for candidate in candidates}
    options = assemble_options(parsed.results, candidate_by_id)
    logger.info("[finder] %d of %d rerank results matched candidates", len(options), len(parsed.results))
    return FindResult(query=query, options=options)


__all__ = [
    "FindResult",
    "FinderOption",
    "RerankOutput",
    "RerankResult",
    "assemble_options",
    "find_chats",
]
