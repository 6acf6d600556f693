"""Per-kind request configuration for the OpenAI Responses API.

Every LLM-backed feature names a *request kind*; the kind selects the model,
the reasoning effort and the text verbosity. The GPT-5 family rejects
``reasoning.effort = "none"``, so every row uses at least ``"low"``.

``chat_fast`` and ``chat_deep`` are chained via ``previous_response_id`` and
therefore must always resolve to the same model:

1. ``OPENAI_MODEL_CHAT`` (explicit unified override)
2. ``OPENAI_MODEL_DEEP`` when FAST and DEEP are both set and differ
   (logged once per registry lifetime)
3. ``OPENAI_MODEL_DEEP``
4. ``OPENAI_MODEL_FAST``
5. the hardcoded default
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional

logger = logging.getLogger(__name__)


class RequestKind(str, Enum):
    """Closed set of logical request kinds."""

    CHAT_FAST = "chat_fast"
    CHAT_DEEP = "chat_deep"
    SUMMARIZE = "summarize"
    INTENT = "intent"
    STACKS = "stacks"
    FINDER = "finder"
    CODEX = "codex"


CHAINED_KINDS = frozenset({RequestKind.CHAT_FAST, RequestKind.CHAT_DEEP})

UNIFIED_CHAT_MODEL_ENV = "OPENAI_MODEL_CHAT"


@dataclass(frozen=True)
class KindDefaults:
    """Hardcoded row of the configuration table."""

    model: str
    reasoning_effort: str  # low | medium | high
    verbosity: str  # low | medium | high
    env_var: str


KIND_DEFAULTS: Mapping[RequestKind, KindDefaults] = MappingProxyType(
    {
        # Both chat kinds share one model (see module docstring)
        RequestKind.CHAT_FAST: KindDefaults("gpt-5-mini", "low", "low", "OPENAI_MODEL_FAST"),
        RequestKind.CHAT_DEEP: KindDefaults("gpt-5-mini", "high", "low", "OPENAI_MODEL_DEEP"),
        RequestKind.SUMMARIZE: KindDefaults("gpt-5-nano", "low", "low", "OPENAI_MODEL_SUMMARIZE"),
        RequestKind.INTENT: KindDefaults("gpt-5-nano", "low", "low", "OPENAI_MODEL_INTENT"),
        RequestKind.STACKS: KindDefaults("gpt-5-nano", "low", "low", "OPENAI_MODEL_STACKS"),
        RequestKind.FINDER: KindDefaults("gpt-5-mini", "low", "low", "OPENAI_MODEL_FINDER"),
        # Code generation needs more deliberation and longer explanations
        RequestKind.CODEX: KindDefaults("gpt-5.1-codex-mini", "medium", "medium", "OPENAI_MODEL_CODEX"),
    }
)


@dataclass(frozen=True)
class RequestConfig:
    """Resolved configuration for one request kind."""

    kind: RequestKind
    model: str
    reasoning_effort: str
    verbosity: str

    @property
    def chained(self) -> bool:
        return self.kind in CHAINED_KINDS

    def as_log_fields(self) -> Dict[str, str]:
        return {
            "route": self.kind.value,
            "model": self.model,
            "reasoning": self.reasoning_effort,
            "verbosity": self.verbosity,
        }


class RequestConfigRegistry:
    """Immutable kind table plus model overrides from an environment snapshot.

    The only mutable element is ``_chained_mismatch_warned``, a set-once latch
    so the FAST/DEEP mismatch warning is logged once, not on every call.
    Concurrent first calls may both log; resolution is unaffected.
    """

    def __init__(self, overrides: Optional[Mapping[str, str]] = None):
        # Keep only non-empty values; an empty env var means "not set"
        self._overrides: Mapping[str, str] = MappingProxyType(
            {name: value for name, value in (overrides or {}).items() if value}
        )
        self._chained_mismatch_warned = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RequestConfigRegistry":
        """Snapshot the relevant model override variables."""
        env = os.environ if environ is None else environ
        names = [defaults.env_var for defaults in KIND_DEFAULTS.values()] + [UNIFIED_CHAT_MODEL_ENV]
        return cls({name: env.get(name, "") for name in names})

    @property
    def chained_mismatch_warned(self) -> bool:
        return self._chained_mismatch_warned

    def chained_chat_model(self) -> str:
        """Model shared by every turn of a chained chat."""
        unified = self._overrides.get(UNIFIED_CHAT_MODEL_ENV)
        if unified:
            return unified

        fast_var = KIND_DEFAULTS[RequestKind.CHAT_FAST].env_var
        deep_var = KIND_DEFAULTS[RequestKind.CHAT_DEEP].env_var
        fast_model = self._overrides.get(fast_var)
        deep_model = self._overrides.get(deep_var)

        if fast_model and deep_model and fast_model != deep_model:
            if not self._chained_mismatch_warned:
                logger.warning(
                    "%s (%s) != %s (%s). Using %s for both chat kinds so previous_response_id "
                    "chaining keeps working. Set %s to configure the unified chat model explicitly.",
                    fast_var,
                    fast_model,
                    deep_var,
                    deep_model,
                    deep_model,
                    UNIFIED_CHAT_MODEL_ENV,
                )
                self._chained_mismatch_warned = True
            return deep_model

        if deep_model:
            return deep_model
        if fast_model:
            return fast_model
        return KIND_DEFAULTS[RequestKind.CHAT_DEEP].model

    def model_for(self, kind: RequestKind) -> str:
        kind = RequestKind(kind)
        if kind in CHAINED_KINDS:
            return self.chained_chat_model()
        defaults = KIND_DEFAULTS[kind]
        return self._overrides.get(defaults.env_var) or defaults.model

    def resolve(self, kind: RequestKind) -> RequestConfig:
        """Resolve model, reasoning effort and verbosity for ``kind``."""
        kind = RequestKind(kind)
        defaults = KIND_DEFAULTS[kind]
        return RequestConfig(
            kind=kind,
            model=self.model_for(kind),
            reasoning_effort=defaults.reasoning_effort,
            verbosity=defaults.verbosity,
        )

    def table(self) -> Dict[str, RequestConfig]:
        """Resolved configuration for every kind, keyed by kind value."""
        return {kind.value: self.resolve(kind) for kind in RequestKind}


__all__ = [
    "CHAINED_KINDS",
    "KIND_DEFAULTS",
    "RequestConfig",
    "RequestConfigRegistry",
    "RequestKind",
]
