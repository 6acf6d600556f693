"""Shared fixtures: a fake OpenAI client wired into a real ModelDispatcher."""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import openai
import pytest

from chat_recall.llm_client import ModelDispatcher
from chat_recall.request_config import RequestConfigRegistry

DAY_MS = 24 * 60 * 60 * 1000


def text_response(text="", response_id="resp_1", status="completed", output=None):
    """Shape of a ``responses.create`` result as far as the dispatcher reads it."""
    return SimpleNamespace(id=response_id, output_text=text, output=output or [], status=status, model="gpt-5-mini")


def parsed_response(parsed, response_id="resp_parse_1"):
    return SimpleNamespace(id=response_id, output_parsed=parsed, status="completed", model="gpt-5-mini")


def api_error(status=400, message="Invalid model", code="model_not_found"):
    request = httpx.Request("POST", "https://api.openai.com/v1/responses")
    response = httpx.Response(status, request=request, headers={"x-request-id": "req_123"})
    return openai.APIStatusError(message, response=response, body={"code": code, "message": message})


@pytest.fixture
def fake_client():
    return SimpleNamespace(
        responses=SimpleNamespace(
            create=AsyncMock(return_value=text_response("hello")),
            parse=AsyncMock(),
        ),
        close=AsyncMock(),
    )


@pytest.fixture
def registry():
    return RequestConfigRegistry({})


@pytest.fixture
def dispatcher(fake_client, registry):
    return ModelDispatcher(fake_client, registry)
