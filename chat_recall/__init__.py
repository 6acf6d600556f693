"""Chat Recall: natural-language search over stored conversation threads.

Two-stage retrieval (local lexical pre-filter + LLM rerank) on top of a
centralized request-kind dispatch layer for the OpenAI Responses API.
"""

__version__ = "0.3.0"

__all__ = ["__version__"]
