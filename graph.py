from typing import Any, AsyncIterator, Dict, List, Literal, Sequence
import logging

from langchain.chat_models import init_chat_model
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, HumanMessage
from langchain_core.runnables import RunnableConfig
from langchain_core.tools import BaseTool
from langchain_openai import OpenAIEmbeddings
from langgraph.checkpoint.base import BaseCheckpointSaver
from langgraph.graph import StateGraph, START, END

from config import Settings
from errors import DocumentLoadError, ModelInvocationError, ToolExecutionError, ToolLoopLimitError
from services.document_qa import ChunkProcessor, DocumentQA
from services.files import FileAccessor
from services.search import WEB_SEARCH_TOOL_NAME, create_web_search_tool
from services.state_store import StateStore
from services.summarization import Summarizer
from state import GraphState, TurnInput, message_text, replace_window

logger = logging.getLogger(__name__)


def route_turn(state: GraphState) -> Literal["agent", "document_agent"]:
    """Entry decision: document questions go to the document agent, everything else to the agent."""
    if state.get("file_id"):
        return "document_agent"
    return "agent"


def route_after_agent(state: GraphState) -> str:
    """Continue to the tools node while the model keeps asking for tools."""
    messages = state.get("messages") or []
    last = messages[-1] if messages else None
    if isinstance(last, AIMessage) and last.tool_calls:
        return "tools"
    return END


def latest_question(state: GraphState) -> str:
    for message in reversed(state.get("messages") or []):
        if isinstance(message, HumanMessage):
            return message_text(message)
    return ""


class Orchestrator:
    """
    Owns the chat graph for the lifetime of the application.

    START routes to either the tool-using agent or the document agent. The
    agent loops through the tools node until the model answers without a
    tool call; the document agent answers once and ends the turn. State is
    checkpointed per thread id by the supplied checkpointer.
    """

    def __init__(
        self,
        model: BaseChatModel,
        tools: Sequence[BaseTool],
        checkpointer: BaseCheckpointSaver,
        summarizer: Summarizer,
        document_qa: DocumentQA,
        max_tool_iterations: int = 5,
        search_tool_name: str = WEB_SEARCH_TOOL_NAME,
    ):
        self.model = model
        self.tools = list(tools)
        self.tools_by_name = {t.name: t for t in self.tools}
        self.checkpointer = checkpointer
        self.summarizer = summarizer
        self.document_qa = document_qa
        self.max_tool_iterations = max_tool_iterations
        self.search_tool_name = search_tool_name
        self.state_store = StateStore(self)
        self.graph = None
        self.rebuild()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        checkpointer: BaseCheckpointSaver,
        file_accessor: FileAccessor,
    ) -> "Orchestrator":
        model = init_chat_model(settings.chat_model)
        embeddings = OpenAIEmbeddings(model=settings.embedding_model)
        document_qa = DocumentQA(
            model=model,
            embeddings=embeddings,
            file_accessor=file_accessor,
            chunk_processor=ChunkProcessor(settings.chunk_size, settings.chunk_overlap),
            k=settings.retrieval_k,
        )
        return cls(
            model=model,
            tools=[create_web_search_tool(settings.search_max_results)],
            checkpointer=checkpointer,
            summarizer=Summarizer(model, settings.max_messages),
            document_qa=document_qa,
            max_tool_iterations=settings.max_tool_iterations,
        )

    def rebuild(self) -> None:
        """(Re)compile the graph from the current model, tools and checkpointer."""
        self.model_with_tools = self.model.bind_tools(self.tools) if self.tools else self.model
        self.graph = (
            StateGraph(GraphState)
            .add_node("agent", self.agent)
            .add_node("tools", self.run_tools)
            .add_node("document_agent", self.document_agent)
            .add_conditional_edges(START, route_turn, ["agent", "document_agent"])
            .add_conditional_edges("agent", route_after_agent, ["tools", END])
            .add_edge("tools", "agent")
            .add_edge("document_agent", END)
            .compile(checkpointer=self.checkpointer)
        )
        logger.info("Chat graph compiled")

    async def agent(self, state: GraphState, config: RunnableConfig) -> Dict[str, Any]:
        window, summary = await self.summarizer.prepare(state, config)
        try:
            response = await self.model_with_tools.ainvoke(window, config)
        except Exception as e:
            logger.error(f"Agent model call failed: {e}")
            raise ModelInvocationError(f"Model call failed: {e}") from e

        return {"messages": replace_window([*window, response]), "summary": summary}

    async def run_tools(self, state: GraphState, config: RunnableConfig) -> Dict[str, Any]:
        iterations = (state.get("tool_iterations") or 0) + 1
        if iterations > self.max_tool_iterations:
            raise ToolLoopLimitError(
                f"Model requested tools more than {self.max_tool_iterations} times in one turn"
            )

        last = state["messages"][-1]
        results: List[Any] = []
        for tool_call in last.tool_calls:
            tool = self.tools_by_name.get(tool_call["name"])
            if tool is None:
                raise ToolExecutionError(f"Unknown tool requested: {tool_call['name']}")
            try:
                results.append(await tool.ainvoke(tool_call, config))
            except Exception as e:
                logger.error(f"Tool {tool_call['name']} failed: {e}")
                raise ToolExecutionError(f"Tool {tool_call['name']} failed: {e}") from e

        logger.info(f"Executed {len(results)} tool call(s), iteration {iterations}")
        return {"messages": results, "tool_iterations": iterations}

    async def document_agent(self, state: GraphState, config: RunnableConfig) -> Dict[str, Any]:
        file_id = state.get("file_id")
        if not file_id:
            raise DocumentLoadError("Document turn without a file id")

        # the stored window and summary are left as they are; only the answer is added
        answer = await self.document_qa.answer(file_id, state.get("file_type"), latest_question(state), config)

        return {"messages": [answer]}

    def thread_config(self, thread_id: str) -> RunnableConfig:
        # each tool pass costs two steps; leave room for the entry and final answer
        return {
            "configurable": {"thread_id": thread_id},
            "recursion_limit": 2 * self.max_tool_iterations + 5,
        }

    def stream_events(self, turn: TurnInput) -> AsyncIterator[Dict[str, Any]]:
        """Run one turn, yielding the graph's v2 event feed as it is produced."""
        return self.graph.astream_events(
            turn.to_graph_input(),
            config=self.thread_config(turn.thread_id),
            version="v2",
        )
