"""Exception hierarchy for Chat Recall."""


class ChatRecallError(Exception):
    """Base class for all package errors."""


class ConfigurationError(ChatRecallError):
    """Raised at startup when required settings (e.g. OPENAI_API_KEY) are missing."""


class ThreadNotFoundError(ChatRecallError):
    """Raised when a referenced thread id does not exist for the user."""

    def __init__(self, thread_id: str):
        self.thread_id = thread_id
        super().__init__(f"Thread not found: {thread_id}")


class LLMError(ChatRecallError):
    """Base class for failures talking to the LLM backend."""


class DispatchError(LLMError):
    """Raised by ``DispatchOutcome.unwrap()`` for any non-success outcome.

    Carries the tagged outcome so handlers can format status/code without
    inspecting provider exception types.
    """

    def __init__(self, outcome, kind: str):
        self.outcome = outcome
        self.kind = kind
        super().__init__(f"[{kind}] {outcome.message}")
