"""
Session continuation across sequential queries.

The first session id the CLI reports is captured and sent with every later
query (`--resume`). Until one is seen, queries run stateless.
"""

import asyncio
import logging
from typing import AsyncIterator, Callable, List, Optional

from claude_conduit.client import query as run_query
from claude_conduit.config import Settings
from claude_conduit.interceptors.base import InterceptorConfig
from claude_conduit.messages import Message
from claude_conduit.options import ClaudeOptions
from claude_conduit.response import MessageHandler, ResponseParser

logger = logging.getLogger(__name__)

QueryFn = Callable[[str, ClaudeOptions], AsyncIterator[Message]]


class Session:
    """
    Sequential queries sharing one CLI conversation.

    Example:
        session = claude().with_model("sonnet").with_session()
        first = await session.query("Pick a number").as_text()
        second = await session.query("Which number did you pick?").as_text()
    """

    def __init__(
        self,
        options: Optional[ClaudeOptions] = None,
        handlers: Optional[List[MessageHandler]] = None,
        *,
        interceptor_config: Optional[InterceptorConfig] = None,
        cancel_event: Optional[asyncio.Event] = None,
        settings: Optional[Settings] = None,
        query_fn: Optional[QueryFn] = None,
    ):
        self._options = options or ClaudeOptions()
        self._handlers = list(handlers or [])
        self._interceptor_config = interceptor_config
        self._cancel_event = cancel_event
        self._settings = settings
        self._query_fn = query_fn or self._default_query
        self._session_id: Optional[str] = None

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    def query(self, prompt: str) -> ResponseParser:
        """
        Start a query in this session. Nothing runs until a view is awaited.

        Returns:
            A ResponseParser whose drain also captures the session id
        """
        options = self._options
        if self._session_id:
            options = options.model_copy(update={"session_id": self._session_id})

        parser = ResponseParser(self._query_fn(prompt, options), self._handlers)
        parser.on_consumed(self._capture_session_id)
        return parser

    def _capture_session_id(self, parser: ResponseParser) -> None:
        if self._session_id is not None:
            return
        session_id = parser.session_id_from_cache()
        if session_id:
            self._session_id = session_id
            logger.debug(f"[SESSION] Captured session id {session_id}")

    def _default_query(self, prompt: str, options: ClaudeOptions) -> AsyncIterator[Message]:
        return run_query(
            prompt,
            options,
            interceptor_config=self._interceptor_config,
            cancel_event=self._cancel_event,
            settings=self._settings,
        )
