"""Thread store collaborator: models, protocol and in-memory implementation.

Persistence durability is out of scope; ``MemoryThreadStore`` keeps threads in
process memory, namespaced per opaque user id (the ``demo_uid`` cookie). Any
object implementing ``ThreadStore`` can be injected into ``create_app``.
"""

import asyncio
import logging
import time
import uuid
from typing import Dict, List, Literal, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

Category = Literal["recent", "professional", "coding", "short_qa", "personal", "travel", "shopping"]

CATEGORIES: List[str] = ["recent", "professional", "coding", "short_qa", "personal", "travel", "shopping"]

# Fields callers may change through update_thread
UPDATABLE_FIELDS = frozenset({"title", "summary", "category", "last_response_id"})


def now_ms() -> int:
    return int(time.time() * 1000)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatMessage(_CamelModel):
    id: str
    role: Literal["user", "assistant", "context"]
    text: str
    created_at: int = Field(default_factory=now_ms)
    response_id: Optional[str] = None


class ThreadMeta(_CamelModel):
    """Thread metadata without messages (list views, retrieval)."""

    id: str
    title: str = "New Chat"
    category: Category = "recent"
    summary: Optional[str] = None
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)
    last_response_id: Optional[str] = None


class ChatThread(ThreadMeta):
    messages: List[ChatMessage] = Field(default_factory=list)

    def meta(self) -> ThreadMeta:
        return ThreadMeta.model_validate(self.model_dump(exclude={"messages"}))


class StacksMeta(_CamelModel):
    last_refresh_at: Optional[int] = None
    counts: Dict[str, int]


def calculate_counts(threads: List[ThreadMeta]) -> Dict[str, int]:
    counts = {category: 0 for category in CATEGORIES}
    for thread in threads:
        counts[thread.category] = counts.get(thread.category, 0) + 1
    return counts


class ThreadStore(Protocol):
    """Operations consumed by the API layer; all keyed by an opaque user id."""

    storage_type: str

    async def list_threads(self, user_id: str) -> List[ThreadMeta]: ...

    async def get_thread(self, user_id: str, thread_id: str) -> Optional[ChatThread]: ...

    async def create_thread(self, user_id: str, **initial) -> ChatThread: ...

    async def append_message(self, user_id: str, thread_id: str, message: ChatMessage) -> None: ...

    async def update_thread(self, user_id: str, thread_id: str, **fields) -> None: ...

    async def delete_thread(self, user_id: str, thread_id: str) -> None: ...

    async def get_stacks_meta(self, user_id: str) -> StacksMeta: ...

    async def set_last_stacks_refresh_at(self, user_id: str, ts: int) -> None: ...


def _log_op(operation: str, user_id: str, extra: str = "") -> None:
    uid = user_id[:8]
    if extra:
        logger.debug("[store:memory] %s uid=%s %s", operation, uid, extra)
    else:
        logger.debug("[store:memory] %s uid=%s", operation, uid)


class MemoryThreadStore:
    """In-process store for development and tests.

    Returned threads are copies; mutate through the store methods.
    """

    storage_type = "memory"

    def __init__(self):
        self._threads: Dict[str, Dict[str, ChatThread]] = {}
        self._last_refresh: Dict[str, Optional[int]] = {}
        self._lock = asyncio.Lock()

    def _user_threads(self, user_id: str) -> Dict[str, ChatThread]:
        return self._threads.setdefault(user_id, {})

    async def list_threads(self, user_id: str) -> List[ThreadMeta]:
        _log_op("list_threads", user_id)
        threads = [thread.meta() for thread in self._user_threads(user_id).values()]
        threads.sort(key=lambda t: t.updated_at, reverse=True)
        return threads

    async def get_thread(self, user_id: str, thread_id: str) -> Optional[ChatThread]:
        _log_op("get_thread", user_id, f"thread_id={thread_id[:8]}")
        thread = self._user_threads(user_id).get(thread_id)
        return thread.model_copy(deep=True) if thread else None

    async def create_thread(self, user_id: str, **initial) -> ChatThread:
        now = now_ms()
        thread = ChatThread(
            id=initial.get("id") or str(uuid.uuid4()),
            title=initial.get("title") or "New Chat",
            category=initial.get("category") or "recent",
            summary=initial.get("summary"),
            created_at=initial.get("created_at") or now,
            updated_at=initial.get("updated_at") or now,
            last_response_id=initial.get("last_response_id"),
            messages=initial.get("messages") or [],
        )
        _log_op("create_thread", user_id, f"thread_id={thread.id[:8]}")
        async with self._lock:
            self._user_threads(user_id)[thread.id] = thread
        return thread.model_copy(deep=True)

    async def append_message(self, user_id: str, thread_id: str, message: ChatMessage) -> None:
        _log_op("append_message", user_id, f"thread_id={thread_id[:8]} role={message.role}")
        async with self._lock:
            thread = self._user_threads(user_id).get(thread_id)
            if thread is None:
                logger.warning("append_message: thread not found %s", thread_id)
                return
            thread.messages.append(message)
            thread.updated_at = now_ms()
            if message.response_id:
                thread.last_response_id = message.response_id

    async def update_thread(self, user_id: str, thread_id: str, **fields) -> None:
        _log_op("update_thread", user_id, f"thread_id={thread_id[:8]}")
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")
        async with self._lock:
            thread = self._user_threads(user_id).get(thread_id)
            if thread is None:
                logger.warning("update_thread: thread not found %s", thread_id)
                return
            updated = thread.model_copy(update={**fields, "updated_at": now_ms()})
            # model_copy skips validation; re-validate so bad categories are rejected
            self._user_threads(user_id)[thread_id] = ChatThread.model_validate(updated.model_dump())

    async def delete_thread(self, user_id: str, thread_id: str) -> None:
        _log_op("delete_thread", user_id, f"thread_id={thread_id[:8]}")
        async with self._lock:
            self._user_threads(user_id).pop(thread_id, None)

    async def get_stacks_meta(self, user_id: str) -> StacksMeta:
        _log_op("get_stacks_meta", user_id)
        threads = await self.list_threads(user_id)
        return StacksMeta(last_refresh_at=self._last_refresh.get(user_id), counts=calculate_counts(threads))

    async def set_last_stacks_refresh_at(self, user_id: str, ts: int) -> None:
        _log_op("set_last_stacks_refresh_at", user_id)
        self._last_refresh[user_id] = ts


__all__ = [
    "CATEGORIES",
    "ChatMessage",
    "ChatThread",
    "MemoryThreadStore",
    "StacksMeta",
    "ThreadMeta",
    "ThreadStore",
    "calculate_counts",
    "now_ms",
]
