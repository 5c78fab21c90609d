"""
Response caching as an explicit, shareable component.

ResponseCache holds the entries; CachingInterceptor is the chain stage that
uses it. Construct the cache once and pass it to every client that should
share hits.
"""

import copy
import hashlib
import json
import logging
import time
from collections import OrderedDict
from typing import AsyncIterator, List, Optional, Tuple

from claude_conduit.interceptors.base import (
    InterceptorContext,
    InterceptorRequest,
    InterceptorResponse,
    Next,
    ResponseMetadata,
)
from claude_conduit.messages import Message

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300
DEFAULT_MAX_ENTRIES = 256


class ResponseCache:
    """In-memory TTL cache of complete message sequences, LRU-bounded."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ):
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._entries: "OrderedDict[str, Tuple[float, List[Message]]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def make_key(request: InterceptorRequest) -> str:
        """Hash of the prompt plus every option that shapes the output."""
        payload = json.dumps(
            {
                "prompt": request.prompt,
                "options": request.options.model_dump(mode="json"),
            },
            sort_keys=True,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def get(self, key: str) -> Optional[List[Message]]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        expires_at, messages = entry
        if time.monotonic() >= expires_at:
            del self._entries[key]
            return None

        self._entries.move_to_end(key)
        return copy.deepcopy(messages)

    def put(self, key: str, messages: List[Message]) -> None:
        self._entries[key] = (time.monotonic() + self._ttl, copy.deepcopy(messages))
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()


class CachingInterceptor:
    """
    Serve repeated requests from a ResponseCache.

    A miss streams through untouched while recording; the recording is stored
    only after the stream finishes without error.
    """

    name = "caching"

    def __init__(self, cache: Optional[ResponseCache] = None):
        self.cache = cache if cache is not None else ResponseCache()

    async def __call__(
        self, request: InterceptorRequest, context: InterceptorContext, next: Next
    ) -> InterceptorResponse:
        key = self.cache.make_key(request)
        cached = self.cache.get(key)

        if cached is not None:
            logger.debug(f"[CACHE] Hit for request {context.request_id}")
            context.metadata["cache_hit"] = True
            return InterceptorResponse(
                messages=_replay(cached), metadata=ResponseMetadata(cached=True)
            )

        context.metadata["cache_hit"] = False
        response = await next(request, context)
        return response.replace(messages=self._record(key, response.messages))

    async def _record(
        self, key: str, messages: AsyncIterator[Message]
    ) -> AsyncIterator[Message]:
        recorded: List[Message] = []
        try:
            async for message in messages:
                recorded.append(message)
                yield message
        finally:
            aclose = getattr(messages, "aclose", None)
            if aclose is not None:
                await aclose()
        self.cache.put(key, recorded)
        logger.debug(f"[CACHE] Stored {len(recorded)} messages")


async def _replay(messages: List[Message]) -> AsyncIterator[Message]:
    for message in messages:
        yield message
