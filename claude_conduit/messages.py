"""
Typed messages produced by the Claude Code CLI pipeline.

The CLI emits line-delimited JSON records. The normalizer turns the ones that
matter into the dataclasses below; content blocks keep the CLI's own field
names so tool inputs and results pass through unchanged.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union


@dataclass
class TextBlock:
    text: str
    type: Literal["text"] = "text"


@dataclass
class ToolUseBlock:
    id: str
    name: str
    input: Dict[str, Any] = field(default_factory=dict)
    type: Literal["tool_use"] = "tool_use"


@dataclass
class ToolResultBlock:
    tool_use_id: str
    content: Any = None
    is_error: bool = False
    type: Literal["tool_result"] = "tool_result"


@dataclass
class UnknownBlock:
    """A content block of a type this library does not model (kept verbatim)."""

    type: str
    data: Dict[str, Any] = field(default_factory=dict)


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock, UnknownBlock]


@dataclass
class Cost:
    """Aggregated monetary cost of an invocation, in USD."""

    total_cost: Optional[float] = None


@dataclass
class SystemMessage:
    """Informational CLI record. The normalizer never yields these."""

    subtype: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    type: Literal["system"] = "system"

    @property
    def session_id(self) -> Optional[str]:
        value = self.data.get("session_id")
        return value if isinstance(value, str) and value else None


@dataclass
class AssistantMessage:
    content: List[ContentBlock] = field(default_factory=list)
    session_id: Optional[str] = None
    type: Literal["assistant"] = "assistant"


@dataclass
class ResultMessage:
    subtype: Optional[str] = None
    content: str = ""
    session_id: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None
    cost: Cost = field(default_factory=Cost)
    type: Literal["result"] = "result"


Message = Union[SystemMessage, AssistantMessage, ResultMessage]


def content_block_from_dict(raw: Dict[str, Any]) -> ContentBlock:
    """
    Build a content block from a CLI content dict.

    Args:
        raw: One element of an assistant message's `content` array

    Returns:
        The matching block dataclass, or UnknownBlock for unmodelled types
    """
    block_type = raw.get("type")

    if block_type == "text":
        return TextBlock(text=raw.get("text") or "")

    if block_type == "tool_use":
        return ToolUseBlock(
            id=raw.get("id") or "",
            name=raw.get("name") or "",
            input=raw.get("input") or {},
        )

    if block_type == "tool_result":
        return ToolResultBlock(
            tool_use_id=raw.get("tool_use_id") or "",
            content=raw.get("content"),
            is_error=bool(raw.get("is_error", False)),
        )

    return UnknownBlock(type=str(block_type), data=dict(raw))


def message_text(message: Message) -> str:
    """Concatenate the text blocks of an assistant message ("" for others)."""
    if not isinstance(message, AssistantMessage):
        return ""
    return "".join(
        block.text for block in message.content if isinstance(block, TextBlock)
    )
