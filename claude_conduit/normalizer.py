"""
Output normalizer: raw Claude CLI records -> typed messages.

Record types emitted by `claude --output-format stream-json --verbose`:
- {"type": "system", "subtype": "init", "session_id": "..."}        -> suppressed
- {"type": "assistant", "message": {"content": [...]}, "session_id"} -> AssistantMessage
- {"type": "result", "subtype": "success", "result": "...", ...}     -> ResultMessage
- {"type": "error", "error": {"message": "..."}}                     -> raised

parse_message() is pure: no I/O, no state kept between calls.
"""

from typing import Any, AsyncIterable, AsyncIterator, Dict, Optional

from claude_conduit.errors import create_typed_error, detect_error_kind
from claude_conduit.messages import (
    AssistantMessage,
    Cost,
    Message,
    ResultMessage,
    content_block_from_dict,
)


def parse_message(record: Dict[str, Any]) -> Optional[Message]:
    """
    Map one raw record to a Message.

    Args:
        record: A decoded JSON object from one CLI output line

    Returns:
        The typed message, or None when the record is suppressed

    Raises:
        AgentReportedError: (or a subclass) for `error` records
    """
    record_type = record.get("type")

    if record_type == "assistant":
        return _parse_assistant(record)

    if record_type == "result":
        return _parse_result(record)

    if record_type == "error":
        error = record.get("error")
        detail = error if isinstance(error, dict) else {}
        message = detail.get("message") or (
            error if isinstance(error, str) and error else "Unknown error"
        )
        raise create_typed_error(detect_error_kind(message), message, detail)

    # system records and anything unrecognised
    return None


async def normalize_stream(
    records: AsyncIterable[Dict[str, Any]],
) -> AsyncIterator[Message]:
    """Apply parse_message to a record stream, yielding non-suppressed messages."""
    async for record in records:
        message = parse_message(record)
        if message is not None:
            yield message


def _parse_assistant(record: Dict[str, Any]) -> AssistantMessage:
    wrapped = record.get("message")
    raw_content = wrapped.get("content") if isinstance(wrapped, dict) else None

    content = []
    if isinstance(raw_content, list):
        content = [
            content_block_from_dict(block)
            for block in raw_content
            if isinstance(block, dict)
        ]
    elif isinstance(raw_content, str) and raw_content:
        content = [content_block_from_dict({"type": "text", "text": raw_content})]

    return AssistantMessage(content=content, session_id=record.get("session_id"))


def _parse_result(record: Dict[str, Any]) -> ResultMessage:
    # Older CLI builds used "content", current ones use "result"
    text = record.get("content") or record.get("result") or ""

    cost = record.get("cost")
    total_cost = cost.get("total_cost_usd") if isinstance(cost, dict) else None
    if total_cost is None:
        total_cost = record.get("total_cost_usd")

    usage = record.get("usage")

    return ResultMessage(
        subtype=record.get("subtype"),
        content=text if isinstance(text, str) else str(text),
        session_id=record.get("session_id"),
        usage=usage if isinstance(usage, dict) else None,
        cost=Cost(total_cost=total_cost),
    )
