"""Rolling summary of conversation history that overflows the message window."""
import logging
from typing import List, Optional, Tuple

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_core.runnables import RunnableConfig

from errors import ModelInvocationError
from state import (
    GraphState,
    MessageRole,
    count_user_messages,
    drop_unanswered_tool_calls,
    message_role,
    message_text,
)

logger = logging.getLogger(__name__)

SUMMARY_TAG = "internal_summary"

SYSTEM_PROMPT = """You are a helpful assistant.
You can answer questions, provide information, and assist with various tasks.
If you don't know the answer, you can search the web for information.
Try to craft your response in markdown format, using appropriate headings, lists, and links to enhance readability.
Be detailed and thorough in your responses, ensuring that the user receives comprehensive information."""

SUMMARIZER_PROMPT = """You maintain a running summary of a conversation between a user and an assistant.
Combine the existing summary (if any) with the new messages into one concise summary.
Keep facts, names, decisions, open questions and anything the user asked to remember.
Reply with the summary text only."""


def build_system_message(summary: str, base_prompt: str = SYSTEM_PROMPT) -> SystemMessage:
    """System message for the agent, carrying the rolling summary when there is one."""
    if not summary:
        return SystemMessage(content=base_prompt)
    return SystemMessage(content=f"{base_prompt}\n\nSummary of the earlier conversation:\n{summary}")


def render_transcript(messages: List[BaseMessage]) -> str:
    lines = []
    for message in messages:
        text = message_text(message)
        if text:
            lines.append(f"{message_role(message).value}: {text}")
    return "\n".join(lines)


class Summarizer:
    """
    Compacts the message window ahead of every agent call.

    When the window holds more than ``max_messages`` user messages, everything
    but the most recent ``max_messages`` non-system messages is folded into the
    summary with a single model call. The system message is rebuilt from the
    summary on every call.
    """

    def __init__(self, model: BaseChatModel, max_messages: int, system_prompt: str = SYSTEM_PROMPT):
        self.model = model
        self.max_messages = max_messages
        self.system_prompt = system_prompt
        if max_messages <= 0:
            logger.warning(
                f"MAX_MESSAGES is {max_messages}; history will be summarized and dropped on every turn"
            )

    def should_summarize(self, messages: List[BaseMessage]) -> bool:
        return count_user_messages(messages) > self.max_messages

    def split_window(self, messages: List[BaseMessage]) -> Tuple[List[BaseMessage], List[BaseMessage]]:
        """Split non-system messages into (carved off, retained)."""
        non_system = [m for m in messages if message_role(m) is not MessageRole.SYSTEM]
        retained = non_system[-self.max_messages:] if self.max_messages > 0 else []
        carved = non_system[:len(non_system) - len(retained)]

        # a tool result is only valid after the assistant message that requested it
        while retained and message_role(retained[0]) is MessageRole.TOOL:
            carved.append(retained.pop(0))

        return carved, retained

    async def summarize(
        self,
        carved: List[BaseMessage],
        prior_summary: str,
        config: Optional[RunnableConfig] = None,
    ) -> str:
        """Fold ``carved`` into ``prior_summary`` with one tagged model call."""
        request = render_transcript(carved)
        if prior_summary:
            request = f"Existing summary:\n{prior_summary}\n\nNew messages:\n{request}"
        else:
            request = f"New messages:\n{request}"

        try:
            response = await self.model.with_config(tags=[SUMMARY_TAG]).ainvoke(
                [SystemMessage(content=SUMMARIZER_PROMPT), HumanMessage(content=request)],
                config,
            )
        except Exception as e:
            logger.error(f"Summarization call failed: {e}")
            raise ModelInvocationError(f"Summarization failed: {e}") from e

        return message_text(response).strip()

    async def prepare(
        self,
        state: GraphState,
        config: Optional[RunnableConfig] = None,
    ) -> Tuple[List[BaseMessage], str]:
        """
        Return the window to send to the model and the (possibly updated) summary.

        The window always starts with a freshly built system message. Tool-call
        requests left unanswered by an earlier failed turn are dropped.
        """
        messages = drop_unanswered_tool_calls(list(state.get("messages") or []))
        summary = state.get("summary") or ""

        if self.should_summarize(messages):
            carved, retained = self.split_window(messages)
            summary = await self.summarize(carved, summary, config)
            logger.info(f"Summarized {len(carved)} messages; keeping {len(retained)} in the window")
        else:
            retained = [m for m in messages if message_role(m) is not MessageRole.SYSTEM]

        return [build_system_message(summary, self.system_prompt), *retained], summary
