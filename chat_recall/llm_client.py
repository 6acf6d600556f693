"""OpenAI Responses API client and request dispatcher.

Single funnel for every LLM call in the system. The dispatcher:

- resolves model / reasoning effort / verbosity through ``RequestConfigRegistry``
- never sends temperature, top_p or max_output_tokens (unsupported on GPT-5)
- stores responses only for chained kinds, so ``previous_response_id`` works
- returns a tagged ``DispatchOutcome`` instead of raising provider errors

No retries happen here: the client is built with ``max_retries=0`` and every
backend failure surfaces on first occurrence.

Usage:
    ```python
    from chat_recall.llm_client import ModelDispatcher, build_openai_client
    from chat_recall.request_config import RequestConfigRegistry, RequestKind

    dispatcher = ModelDispatcher(build_openai_client(), RequestConfigRegistry.from_env())
    outcome = await dispatcher.create_text_response(RequestKind.CHAT_FAST, "Hello")
    text = outcome.unwrap().text
    ```
"""

import logging
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Optional, Type, Union

import httpx
import pydantic
from openai import APIError, AsyncOpenAI

from . import config
from .exceptions import ConfigurationError, DispatchError
from .request_config import RequestConfig, RequestConfigRegistry, RequestKind

logger = logging.getLogger(__name__)


# ============================================================================
# Client construction
# ============================================================================


def build_openai_client(api_key: Optional[str] = None) -> AsyncOpenAI:
    """Create the process-wide async OpenAI client.

    Called once during service start-up; the instance is injected into
    ``ModelDispatcher``. Missing credentials fail here rather than on the
    first request.

    Raises:
        ConfigurationError: If no API key is configured
    """
    key = api_key or config.OPENAI_API_KEY
    if not key:
        raise ConfigurationError("OPENAI_API_KEY not configured")

    http_client = httpx.AsyncClient(timeout=config.OPENAI_TIMEOUT, trust_env=config.ALLOW_PROXIES)
    logger.debug(
        "Created OpenAI client base_url=%s timeout=%s trust_env=%s",
        config.OPENAI_BASE_URL or "default",
        config.OPENAI_TIMEOUT,
        config.ALLOW_PROXIES,
    )
    return AsyncOpenAI(
        api_key=key,
        base_url=config.OPENAI_BASE_URL,
        timeout=config.OPENAI_TIMEOUT,
        max_retries=0,
        http_client=http_client,
    )


# ============================================================================
# Dispatch outcomes
# ============================================================================


@dataclass(frozen=True)
class TextResponse:
    id: str
    text: str
    status: Optional[str] = None


@dataclass(frozen=True)
class ParsedResponse:
    id: str
    parsed: Any


@dataclass(frozen=True)
class Success:
    value: Any

    ok: ClassVar[bool] = True

    def unwrap(self) -> Any:
        return self.value


@dataclass(frozen=True)
class _Failure:
    config: RequestConfig
    message: str

    ok: ClassVar[bool] = False

    def unwrap(self) -> Any:
        raise DispatchError(self, self.config.kind.value)


@dataclass(frozen=True)
class BackendRejected(_Failure):
    """The backend rejected or failed the call."""

    status: Optional[int] = None
    code: Optional[str] = None
    request_id: Optional[str] = None


@dataclass(frozen=True)
class Malformed(_Failure):
    """The backend answered but produced no schema-conforming output."""


@dataclass(frozen=True)
class Unknown(_Failure):
    """Any other failure (programming error, transport bug, ...)."""


DispatchOutcome = Union[Success, BackendRejected, Malformed, Unknown]


def format_dispatch_error(outcome: DispatchOutcome) -> Dict[str, Any]:
    """Render a failed outcome as an API error body.

    Backend rejections are annotated with the route, model and reasoning level
    for diagnosability; other failures expose only their message.
    """
    if isinstance(outcome, BackendRejected):
        return {
            "detail": f"OpenAI API error: {outcome.message}",
            "context": {
                "route": outcome.config.kind.value,
                "model": outcome.config.model,
                "reasoning": outcome.config.reasoning_effort,
            },
        }
    if isinstance(outcome, (Malformed, Unknown)):
        return {"detail": outcome.message or "Unknown error"}
    raise TypeError(f"Not a failed outcome: {outcome!r}")


# ============================================================================
# Request building / response extraction
# ============================================================================


def build_request_params(
    request_config: RequestConfig,
    input: Any,
    previous_response_id: Optional[str] = None,
    instructions: Optional[str] = None,
) -> Dict[str, Any]:
    """Build ``responses.create`` parameters for a resolved kind.

    Chained kinds use ``store=True`` on every turn, including the first;
    otherwise the next turn could not reference this response id.
    """
    params: Dict[str, Any] = {
        "model": request_config.model,
        "input": input,
        "store": request_config.chained,
        "stream": False,
        "reasoning": {"effort": request_config.reasoning_effort},
        "text": {
            "format": {"type": "text"},
            "verbosity": request_config.verbosity,
        },
    }
    if previous_response_id:
        params["previous_response_id"] = previous_response_id
    if instructions:
        params["instructions"] = instructions
    return params


def extract_text_output(response: Any) -> str:
    """Return the first assistant text segment of a response, or ""."""
    output_text = getattr(response, "output_text", None)
    if output_text:
        return output_text

    for item in getattr(response, "output", None) or []:
        if getattr(item, "type", None) != "message":
            continue
        for content in getattr(item, "content", None) or []:
            if getattr(content, "type", None) == "output_text":
                return getattr(content, "text", "") or ""
    return ""


def _backend_rejected(exc: APIError, request_config: RequestConfig) -> BackendRejected:
    outcome = BackendRejected(
        config=request_config,
        message=getattr(exc, "message", None) or str(exc),
        status=getattr(exc, "status_code", None),
        code=getattr(exc, "code", None),
        request_id=getattr(exc, "request_id", None),
    )
    logger.error(
        "[openai:%s] API error route=%s model=%s reasoning=%s verbosity=%s status=%s code=%s request_id=%s: %s",
        request_config.kind.value,
        request_config.kind.value,
        request_config.model,
        request_config.reasoning_effort,
        request_config.verbosity,
        outcome.status,
        outcome.code,
        outcome.request_id,
        outcome.message,
    )
    return outcome


def _unknown(exc: Exception, request_config: RequestConfig) -> Unknown:
    logger.error("[openai:%s] Unknown error: %s", request_config.kind.value, exc, exc_info=True)
    return Unknown(config=request_config, message=str(exc) or type(exc).__name__)


# ============================================================================
# Dispatcher
# ============================================================================


class ModelDispatcher:
    """Issue text and structured calls for a request kind."""

    def __init__(self, client: AsyncOpenAI, registry: RequestConfigRegistry):
        self.client = client
        self.registry = registry

    def config_for(self, kind: RequestKind) -> RequestConfig:
        return self.registry.resolve(kind)

    async def create_text_response(
        self,
        kind: RequestKind,
        input: Any,
        previous_response_id: Optional[str] = None,
        instructions: Optional[str] = None,
    ) -> DispatchOutcome:
        """Free-text call. Success value is a ``TextResponse``."""
        request_config = self.registry.resolve(kind)
        params = build_request_params(request_config, input, previous_response_id, instructions)

        logger.info(
            "[openai:%s] Request model=%s reasoning=%s verbosity=%s store=%s has_previous_response_id=%s",
            request_config.kind.value,
            request_config.model,
            request_config.reasoning_effort,
            request_config.verbosity,
            params["store"],
            bool(previous_response_id),
        )

        try:
            response = await self.client.responses.create(**params)
        except APIError as exc:
            return _backend_rejected(exc, request_config)
        except Exception as exc:
            return _unknown(exc, request_config)

        status = getattr(response, "status", None)
        logger.info(
            "[openai:%s] Response id=%s status=%s model=%s",
            request_config.kind.value,
            response.id,
            status,
            getattr(response, "model", None),
        )
        return Success(TextResponse(id=response.id, text=extract_text_output(response), status=status))

    async def create_parsed_response(
        self,
        kind: RequestKind,
        input: Any,
        schema: Type[pydantic.BaseModel],
        schema_name: str,
    ) -> DispatchOutcome:
        """Schema-constrained call. Success value is a ``ParsedResponse``.

        Structured calls are stateless one-shots: never stored, never chained.
        ``schema_name`` only labels log lines and the Malformed message; the
        SDK names the wire-level JSON schema after the ``schema`` class.
        """
        request_config = self.registry.resolve(kind)

        logger.info(
            "[openai:%s] Parse request model=%s reasoning=%s schema=%s",
            request_config.kind.value,
            request_config.model,
            request_config.reasoning_effort,
            schema_name,
        )

        malformed_message = f"Failed to parse {schema_name} from model response"
        try:
            response = await self.client.responses.parse(
                model=request_config.model,
                input=input,
                store=False,
                reasoning={"effort": request_config.reasoning_effort},
                text={"verbosity": request_config.verbosity},
                text_format=schema,
            )
        except APIError as exc:
            return _backend_rejected(exc, request_config)
        except (pydantic.ValidationError, ValueError) as exc:
            # Output that does not validate against the schema (JSON errors are ValueErrors)
            logger.error("[openai:%s] Schema %s validation failed: %s", request_config.kind.value, schema_name, exc)
            return Malformed(config=request_config, message=malformed_message)
        except Exception as exc:
            return _unknown(exc, request_config)

        parsed = getattr(response, "output_parsed", None)
        logger.info(
            "[openai:%s] Parse response id=%s status=%s model=%s has_parsed=%s",
            request_config.kind.value,
            response.id,
            getattr(response, "status", None),
            getattr(response, "model", None),
            parsed is not None,
        )

        if parsed is None:
            logger.error("[openai:%s] No parsed output for schema %s", request_config.kind.value, schema_name)
            return Malformed(config=request_config, message=malformed_message)
        if not isinstance(parsed, schema):
            try:
                parsed = schema.model_validate(parsed)
            except pydantic.ValidationError as exc:
                logger.error("[openai:%s] Schema %s validation failed: %s", request_config.kind.value, schema_name, exc)
                return Malformed(config=request_config, message=malformed_message)

        return Success(ParsedResponse(id=response.id, parsed=parsed))


__all__ = [
    "BackendRejected",
    "DispatchOutcome",
    "Malformed",
    "ModelDispatcher",
    "ParsedResponse",
    "Success",
    "TextResponse",
    "Unknown",
    "build_openai_client",
    "build_request_params",
    "extract_text_output",
    "format_dispatch_error",
]
