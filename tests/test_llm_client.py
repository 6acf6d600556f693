"""Tests for request building, response extraction and the dispatcher outcomes."""

from types import SimpleNamespace

import pytest
from pydantic import BaseModel

import chat_recall.config
from chat_recall.exceptions import ConfigurationError, DispatchError
from chat_recall.llm_client import (
    BackendRejected,
    Malformed,
    Success,
    Unknown,
    build_openai_client,
    build_request_params,
    extract_text_output,
    format_dispatch_error,
)
from chat_recall.request_config import RequestConfigRegistry, RequestKind

from conftest import api_error, parsed_response, text_response


class Verdict(BaseModel):
    answer: str


def test_build_openai_client_requires_key(monkeypatch):
    monkeypatch.setattr(chat_recall.config, "OPENAI_API_KEY", None)
    with pytest.raises(ConfigurationError):
        build_openai_client()


def test_build_openai_client_disables_retries(monkeypatch):
    monkeypatch.setattr(chat_recall.config, "OPENAI_API_KEY", "sk-test")
    client = build_openai_client()
    assert client.max_retries == 0


class TestRequestParams:
    def test_chained_kind_is_stored_on_first_turn(self):
        cfg = RequestConfigRegistry({}).resolve(RequestKind.CHAT_DEEP)
        params = build_request_params(cfg, "hi")

        assert params["store"] is True
        assert "previous_response_id" not in params
        assert params["reasoning"] == {"effort": "high"}
        assert params["text"] == {"format": {"type": "text"}, "verbosity": "low"}

    def test_non_chained_kind_not_stored(self):
        cfg = RequestConfigRegistry({}).resolve(RequestKind.SUMMARIZE)
        assert build_request_params(cfg, "hi")["store"] is False

    def test_previous_response_id_and_instructions(self):
        cfg = RequestConfigRegistry({}).resolve(RequestKind.CHAT_FAST)
        params = build_request_params(cfg, "hi", previous_response_id="resp_0", instructions="Be brief")

        assert params["previous_response_id"] == "resp_0"
        assert params["instructions"] == "Be brief"

    def test_never_sends_sampling_parameters(self):
        for kind in RequestKind:
            params = build_request_params(RequestConfigRegistry({}).resolve(kind), "x")
            assert not {"temperature", "top_p", "max_output_tokens"} & set(params)


class TestExtractText:
    def test_prefers_output_text(self):
        assert extract_text_output(text_response("direct")) == "direct"

    def test_falls_back_to_first_message_segment(self):
        output = [
            SimpleNamespace(type="reasoning", content=None),
            SimpleNamespace(
                type="message",
                content=[
                    SimpleNamespace(type="refusal", text="no"),
                    SimpleNamespace(type="output_text", text="from items"),
                    SimpleNamespace(type="output_text", text="second"),
                ],
            ),
        ]
        assert extract_text_output(text_response("", output=output)) == "from items"

    def test_defaults_to_empty_string(self):
        assert extract_text_output(SimpleNamespace()) == ""
        assert extract_text_output(text_response("", output=[SimpleNamespace(type="reasoning")])) == ""


class TestTextDispatch:
    @pytest.mark.asyncio
    async def test_success(self, dispatcher, fake_client):
        fake_client.responses.create.return_value = text_response("pong", response_id="resp_9")

        outcome = await dispatcher.create_text_response(RequestKind.CHAT_FAST, "ping", previous_response_id="resp_8")

        assert isinstance(outcome, Success)
        assert outcome.unwrap().id == "resp_9"
        assert outcome.unwrap().text == "pong"
        kwargs = fake_client.responses.create.call_args.kwargs
        assert kwargs["model"] == "gpt-5-mini"
        assert kwargs["store"] is True
        assert kwargs["previous_response_id"] == "resp_8"

    @pytest.mark.asyncio
    async def test_backend_rejection(self, dispatcher, fake_client):
        fake_client.responses.create.side_effect = api_error(status=404, message="Model not found")

        outcome = await dispatcher.create_text_response(RequestKind.SUMMARIZE, "x")

        assert isinstance(outcome, BackendRejected)
        assert outcome.status == 404
        assert outcome.code == "model_not_found"
        assert outcome.request_id == "req_123"
        assert outcome.config.model == "gpt-5-nano"
        with pytest.raises(DispatchError) as exc_info:
            outcome.unwrap()
        assert exc_info.value.kind == "summarize"
        assert exc_info.value.outcome is outcome

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_unknown(self, dispatcher, fake_client):
        fake_client.responses.create.side_effect = RuntimeError("socket exploded")

        outcome = await dispatcher.create_text_response(RequestKind.INTENT, "x")

        assert isinstance(outcome, Unknown)
        assert outcome.message == "socket exploded"

    @pytest.mark.asyncio
    async def test_no_retry_on_failure(self, dispatcher, fake_client):
        fake_client.responses.create.side_effect = api_error(status=500, message="boom", code="server_error")

        await dispatcher.create_text_response(RequestKind.CHAT_DEEP, "x")

        assert fake_client.responses.create.await_count == 1


class TestParsedDispatch:
    @pytest.mark.asyncio
    async def test_success(self, dispatcher, fake_client):
        fake_client.responses.parse.return_value = parsed_response(Verdict(answer="yes"))

        outcome = await dispatcher.create_parsed_response(RequestKind.FINDER, "q", Verdict, "verdict")

        assert outcome.ok
        assert outcome.unwrap().parsed == Verdict(answer="yes")
        kwargs = fake_client.responses.parse.call_args.kwargs
        assert kwargs["store"] is False
        assert kwargs["text_format"] is Verdict
        assert "previous_response_id" not in kwargs

    @pytest.mark.asyncio
    async def test_missing_parsed_output_is_malformed(self, dispatcher, fake_client):
        fake_client.responses.parse.return_value = parsed_response(None)

        outcome = await dispatcher.create_parsed_response(RequestKind.FINDER, "q", Verdict, "verdict")

        assert isinstance(outcome, Malformed)
        assert outcome.message == "Failed to parse verdict from model response"

    @pytest.mark.asyncio
    async def test_dict_output_is_validated(self, dispatcher, fake_client):
        fake_client.responses.parse.return_value = parsed_response({"answer": "ok"})
        outcome = await dispatcher.create_parsed_response(RequestKind.FINDER, "q", Verdict, "verdict")
        assert outcome.unwrap().parsed == Verdict(answer="ok")

        fake_client.responses.parse.return_value = parsed_response({"wrong": 1})
        outcome = await dispatcher.create_parsed_response(RequestKind.FINDER, "q", Verdict, "verdict")
        assert isinstance(outcome, Malformed)

    @pytest.mark.asyncio
    async def test_backend_rejection(self, dispatcher, fake_client):
        fake_client.responses.parse.side_effect = api_error(status=400, message="Bad schema", code="invalid_schema")

        outcome = await dispatcher.create_parsed_response(RequestKind.STACKS, "q", Verdict, "verdict")

        assert isinstance(outcome, BackendRejected)
        assert outcome.status == 400


class TestFormatDispatchError:
    def test_backend_rejected_body(self):
        cfg = RequestConfigRegistry({}).resolve(RequestKind.CHAT_DEEP)
        body = format_dispatch_error(BackendRejected(config=cfg, message="quota exceeded", status=429))

        assert body == {
            "detail": "OpenAI API error: quota exceeded",
            "context": {"route": "chat_deep", "model": "gpt-5-mini", "reasoning": "high"},
        }

    def test_malformed_body(self):
        cfg = RequestConfigRegistry({}).resolve(RequestKind.INTENT)
        assert format_dispatch_error(Malformed(config=cfg, message="bad")) == {"detail": "bad"}

    def test_success_is_not_an_error(self):
        with pytest.raises(TypeError):
            format_dispatch_error(Success(value=None))
