"""Conversation state shared by the orchestration graph and the state store."""
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, TypedDict

from langchain_core.messages import (
    AIMessage,
    AnyMessage,
    BaseMessage,
    HumanMessage,
    RemoveMessage,
    SystemMessage,
    ToolMessage,
)
from langgraph.graph.message import REMOVE_ALL_MESSAGES, add_messages
from pydantic import BaseModel, Field, ValidationError, field_validator

from errors import PreconditionError


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


def message_role(message: BaseMessage) -> MessageRole:
    """Map a LangChain message to its role, rejecting anything unrecognised."""
    if isinstance(message, HumanMessage):
        return MessageRole.USER
    if isinstance(message, AIMessage):
        return MessageRole.ASSISTANT
    if isinstance(message, SystemMessage):
        return MessageRole.SYSTEM
    if isinstance(message, ToolMessage):
        return MessageRole.TOOL
    raise TypeError(f"Unsupported message type: {type(message).__name__}")


def message_text(message: BaseMessage) -> str:
    """Plain text of a message whose content may be a string or a list of blocks."""
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def count_user_messages(messages: List[BaseMessage]) -> int:
    return sum(1 for m in messages if message_role(m) is MessageRole.USER)


def drop_unanswered_tool_calls(messages: List[BaseMessage]) -> List[BaseMessage]:
    """
    Remove assistant tool-call requests that did not get a result for every call.

    Tool results belonging to a removed request are removed with it, so the
    window never holds a request or a result without its counterpart.
    """
    answered = {m.tool_call_id for m in messages if isinstance(m, ToolMessage)}
    dropped_calls = set()
    cleaned = []
    for message in messages:
        if isinstance(message, AIMessage) and message.tool_calls:
            call_ids = {call["id"] for call in message.tool_calls}
            if not call_ids <= answered:
                dropped_calls |= call_ids
                continue
        if isinstance(message, ToolMessage) and message.tool_call_id in dropped_calls:
            continue
        cleaned.append(message)
    return cleaned


def replace_window(messages: List[BaseMessage]) -> List[BaseMessage]:
    """Reducer input that replaces the whole stored window with ``messages``."""
    return [RemoveMessage(id=REMOVE_ALL_MESSAGES), *messages]


class GraphState(TypedDict, total=False):
    messages: Annotated[List[AnyMessage], add_messages]
    summary: str
    file_id: Optional[str]
    file_type: Optional[str]
    tool_iterations: int


class ConversationState(BaseModel):
    """Resumable snapshot of one thread, as read from or written to the state store."""
    messages: List[BaseMessage] = Field(default_factory=list)
    summary: str = ""
    file_id: Optional[str] = None
    file_type: Optional[str] = None

    @classmethod
    def from_values(cls, values: Dict[str, Any]) -> "ConversationState":
        return cls(
            messages=list(values.get("messages") or []),
            summary=values.get("summary") or "",
            file_id=values.get("file_id"),
            file_type=values.get("file_type"),
        )

    def to_update(self) -> Dict[str, Any]:
        return {
            "messages": replace_window(self.messages),
            "summary": self.summary,
            "file_id": self.file_id,
            "file_type": self.file_type,
            "tool_iterations": 0,
        }


class TurnInput(BaseModel):
    """One incoming user turn, validated before it enters the graph."""
    thread_id: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    file_id: Optional[str] = None
    file_type: Optional[Literal["pdf"]] = None

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("message must not be blank")
        return value

    @field_validator("file_id")
    @classmethod
    def empty_file_id_is_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    @classmethod
    def parse(cls, **fields: Any) -> "TurnInput":
        try:
            return cls(**fields)
        except ValidationError as e:
            raise PreconditionError(f"Invalid turn input: {e.errors(include_url=False)}") from e

    def to_graph_input(self) -> Dict[str, Any]:
        return {
            "messages": [HumanMessage(content=self.message)],
            "file_id": self.file_id,
            "file_type": self.file_type,
            "tool_iterations": 0,
        }
