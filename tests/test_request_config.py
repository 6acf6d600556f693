"""Tests for the request-kind registry and chained-model unification."""

import logging

import pytest

from chat_recall.request_config import KIND_DEFAULTS, RequestConfigRegistry, RequestKind

LOGGER = "chat_recall.request_config"


def test_defaults_table():
    table = RequestConfigRegistry({}).table()

    assert set(table) == {kind.value for kind in RequestKind}
    assert table["chat_fast"].model == table["chat_deep"].model == "gpt-5-mini"
    assert table["chat_deep"].reasoning_effort == "high"
    assert table["chat_fast"].reasoning_effort == "low"
    assert table["summarize"].model == "gpt-5-nano"
    assert table["finder"].model == "gpt-5-mini"
    assert table["codex"].model == "gpt-5.1-codex-mini"
    assert table["codex"].reasoning_effort == "medium"
    assert table["codex"].verbosity == "medium"
    for kind in ("chat_fast", "chat_deep", "summarize", "intent", "stacks", "finder"):
        assert table[kind].verbosity == "low"


def test_no_kind_uses_none_effort():
    for defaults in KIND_DEFAULTS.values():
        assert defaults.reasoning_effort in {"low", "medium", "high"}


def test_non_chat_override():
    registry = RequestConfigRegistry.from_env({"OPENAI_MODEL_FINDER": "gpt-5", "OPENAI_MODEL_SUMMARIZE": ""})

    assert registry.model_for(RequestKind.FINDER) == "gpt-5"
    # Empty value means "not set"
    assert registry.model_for(RequestKind.SUMMARIZE) == "gpt-5-nano"


def test_from_env_ignores_unrelated_variables():
    registry = RequestConfigRegistry.from_env({"OPENAI_MODEL_UNKNOWN": "x", "PATH": "/bin"})
    assert registry.table() == RequestConfigRegistry({}).table()


@pytest.mark.parametrize(
    "env, expected",
    [
        ({}, "gpt-5-mini"),
        ({"OPENAI_MODEL_FAST": "m1"}, "m1"),
        ({"OPENAI_MODEL_DEEP": "m2"}, "m2"),
        ({"OPENAI_MODEL_FAST": "m1", "OPENAI_MODEL_DEEP": "m1"}, "m1"),
        ({"OPENAI_MODEL_FAST": "m1", "OPENAI_MODEL_DEEP": "m2"}, "m2"),
        ({"OPENAI_MODEL_FAST": "m1", "OPENAI_MODEL_DEEP": "m2", "OPENAI_MODEL_CHAT": "m3"}, "m3"),
        ({"OPENAI_MODEL_CHAT": "m3"}, "m3"),
    ],
)
def test_chained_kinds_always_share_a_model(env, expected):
    registry = RequestConfigRegistry.from_env(env)

    assert registry.model_for(RequestKind.CHAT_FAST) == expected
    assert registry.model_for(RequestKind.CHAT_DEEP) == expected


def test_mismatch_warning_logged_once(caplog):
    registry = RequestConfigRegistry.from_env({"OPENAI_MODEL_FAST": "m1", "OPENAI_MODEL_DEEP": "m2"})

    with caplog.at_level(logging.WARNING, logger=LOGGER):
        for _ in range(5):
            registry.resolve(RequestKind.CHAT_FAST)
            registry.resolve(RequestKind.CHAT_DEEP)

    warnings = [r for r in caplog.records if r.name == LOGGER and r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert "OPENAI_MODEL_CHAT" in warnings[0].getMessage()
    assert registry.chained_mismatch_warned is True


def test_no_warning_with_unified_override(caplog):
    registry = RequestConfigRegistry.from_env(
        {"OPENAI_MODEL_FAST": "m1", "OPENAI_MODEL_DEEP": "m2", "OPENAI_MODEL_CHAT": "m3"}
    )

    with caplog.at_level(logging.WARNING, logger=LOGGER):
        registry.resolve(RequestKind.CHAT_FAST)

    assert not [r for r in caplog.records if r.name == LOGGER]
    assert registry.chained_mismatch_warned is False


def test_latch_is_per_registry(caplog):
    env = {"OPENAI_MODEL_FAST": "m1", "OPENAI_MODEL_DEEP": "m2"}

    with caplog.at_level(logging.WARNING, logger=LOGGER):
        RequestConfigRegistry.from_env(env).resolve(RequestKind.CHAT_FAST)
        RequestConfigRegistry.from_env(env).resolve(RequestKind.CHAT_FAST)

    assert len([r for r in caplog.records if r.name == LOGGER]) == 2


def test_resolve_accepts_kind_strings_and_rejects_unknown():
    registry = RequestConfigRegistry({})

    assert registry.resolve("intent").kind is RequestKind.INTENT
    with pytest.raises(ValueError):
        registry.resolve("translate")


def test_chained_flag_and_log_fields():
    registry = RequestConfigRegistry({})

    assert registry.resolve(RequestKind.CHAT_DEEP).chained is True
    assert registry.resolve(RequestKind.FINDER).chained is False
    assert registry.resolve(RequestKind.FINDER).as_log_fields() == {
        "route": "finder",
        "model": "gpt-5-mini",
        "reasoning": "low",
        "verbosity": "low",
    }
