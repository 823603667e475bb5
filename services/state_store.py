"""Checkpoint-backed store for resumable conversation state."""
import logging
from typing import TYPE_CHECKING, List, Optional

from langchain_core.messages import AIMessage, HumanMessage

from errors import PersistenceError
from schemas.chat import CheckpointMessage
from state import ConversationState, drop_unanswered_tool_calls, message_text

if TYPE_CHECKING:
    from graph import Orchestrator

logger = logging.getLogger(__name__)


class StateStore:
    """
    get/put/delete of a thread's ConversationState.

    Reads and writes go through the compiled graph so reducers apply the same
    way they do during a turn; deletes go straight to the checkpointer. There
    is no locking here; callers serialize turns per thread.
    """

    # writing as the terminal node leaves the stored snapshot with nothing pending
    WRITE_AS_NODE = "document_agent"

    def __init__(self, orchestrator: "Orchestrator"):
        self.orchestrator = orchestrator

    def _config(self, thread_id: str):
        return {"configurable": {"thread_id": thread_id}}

    async def get(self, thread_id: str) -> Optional[ConversationState]:
        try:
            snapshot = await self.orchestrator.graph.aget_state(self._config(thread_id))
        except Exception as e:
            logger.exception(f"Failed to read checkpoint for thread {thread_id}")
            raise PersistenceError(f"Failed to read checkpoint for thread {thread_id}: {e}") from e

        if not snapshot or not snapshot.values:
            return None
        return ConversationState.from_values(snapshot.values)

    async def put(self, thread_id: str, state: ConversationState) -> None:
        try:
            await self.orchestrator.graph.aupdate_state(
                self._config(thread_id),
                state.to_update(),
                as_node=self.WRITE_AS_NODE,
            )
        except Exception as e:
            logger.exception(f"Failed to write checkpoint for thread {thread_id}")
            raise PersistenceError(f"Failed to write checkpoint for thread {thread_id}: {e}") from e

    async def delete(self, thread_id: str) -> None:
        try:
            await self.orchestrator.checkpointer.adelete_thread(thread_id)
        except Exception as e:
            logger.exception(f"Failed to delete checkpoint for thread {thread_id}")
            raise PersistenceError(f"Failed to delete checkpoint for thread {thread_id}: {e}") from e

    async def repair(self, thread_id: str) -> bool:
        """Rewrite the stored window without tool-call requests a failed turn left unanswered."""
        state = await self.get(thread_id)
        if state is None:
            return False

        cleaned = drop_unanswered_tool_calls(state.messages)
        if len(cleaned) == len(state.messages):
            return False

        logger.info(f"Dropping {len(state.messages) - len(cleaned)} unanswered tool message(s) from thread {thread_id}")
        await self.put(thread_id, state.model_copy(update={"messages": cleaned}))
        return True

    async def messages_for_display(self, thread_id: str) -> List[CheckpointMessage]:
        """User and assistant messages of the latest snapshot, tool-call requests skipped."""
        state = await self.get(thread_id)
        if state is None:
            return []

        messages = []
        for message in state.messages:
            text = message_text(message)
            if isinstance(message, HumanMessage):
                messages.append(CheckpointMessage(role="user", content=text, id=message.id))
            elif isinstance(message, AIMessage) and text:
                messages.append(CheckpointMessage(role="assistant", content=text, id=message.id))
        return messages
