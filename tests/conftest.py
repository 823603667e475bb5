"""
Test fixtures for the chat orchestration service.
"""

import json
import os
import re
import sys
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional
from unittest.mock import MagicMock

import pytest

# Add project root to path
ROOT_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT_DIR))

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret"

from langchain_core.embeddings import DeterministicFakeEmbedding
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, AIMessageChunk, BaseMessage
from langchain_core.messages.tool import tool_call_chunk
from langchain_core.outputs import ChatGeneration, ChatGenerationChunk, ChatResult
from langgraph.checkpoint.memory import InMemorySaver
from pydantic import Field
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from errors import DocumentLoadError
from graph import Orchestrator
from models import Base
from schemas.auth import Identity
from services.chat import ChatService
from services.document_qa import ChunkProcessor, DocumentQA
from services.search import create_web_search_tool
from services.summarization import Summarizer
from services.threads import TitleGenerator
from state import TurnInput


class ScriptedChatModel(BaseChatModel):
    """Chat model that replays canned responses, streaming their text word by word."""

    responses: List[BaseMessage] = Field(default_factory=list)
    default: Optional[BaseMessage] = None
    error: Optional[Exception] = None
    calls: List[List[BaseMessage]] = Field(default_factory=list)

    @property
    def _llm_type(self) -> str:
        return "scripted"

    def bind_tools(self, tools, **kwargs):
        return self

    def _next(self, messages: List[BaseMessage]) -> BaseMessage:
        self.calls.append(list(messages))
        if self.error is not None:
            raise self.error
        if self.responses:
            return self.responses.pop(0)
        return self.default or AIMessage(content="ok")

    def _generate(self, messages, stop=None, run_manager=None, **kwargs) -> ChatResult:
        return ChatResult(generations=[ChatGeneration(message=self._next(messages))])

    async def _agenerate(self, messages, stop=None, run_manager=None, **kwargs) -> ChatResult:
        return self._generate(messages, stop, **kwargs)

    def _stream(self, messages, stop=None, run_manager=None, **kwargs) -> Iterator[ChatGenerationChunk]:
        response = self._next(messages)
        text = response.content if isinstance(response.content, str) else ""
        tokens = re.findall(r"\S+\s*", text)
        for token in tokens:
            yield ChatGenerationChunk(message=AIMessageChunk(content=token))

        tool_calls = getattr(response, "tool_calls", None) or []
        if tool_calls or not tokens:
            yield ChatGenerationChunk(message=AIMessageChunk(
                content="",
                tool_call_chunks=[
                    tool_call_chunk(name=call["name"], args=json.dumps(call["args"]), id=call["id"], index=i)
                    for i, call in enumerate(tool_calls)
                ],
            ))

    async def _astream(self, messages, stop=None, run_manager=None, **kwargs):
        for chunk in self._stream(messages, stop, **kwargs):
            yield chunk


def search_request(query: str = "latest news", call_id: str = "call_1") -> AIMessage:
    return AIMessage(
        content="",
        tool_calls=[{"name": "web_search", "args": {"query": query}, "id": call_id, "type": "tool_call"}],
    )


SEARCH_RESULTS = {
    "query": "latest news",
    "results": [
        {"title": "First", "url": "https://news.example/first", "content": "First story", "score": 0.9},
        {"title": "Second", "url": "https://news.example/second", "content": "Second story", "score": 0.8},
    ],
}

DOCUMENT_TEXT = "\n\n".join(
    f"Section {i}. The quarterly report covers topic number {i} in detail, "
    f"including revenue figures, staffing changes and the outlook for region {i}."
    for i in range(1, 13)
)


class FakeFileAccessor:
    """In-memory stand-in for uploaded file storage."""

    def __init__(self, texts: Dict[str, str]):
        self.texts = texts
        self.loaded: List[str] = []

    async def load_text(self, file_id: str, file_type: Optional[str] = None) -> str:
        self.loaded.append(file_id)
        if file_id not in self.texts:
            raise DocumentLoadError(f"File {file_id} not found")
        return self.texts[file_id]


@pytest.fixture
def identity():
    return Identity(id="user-1", email="user@example.com", name="Test User")


@pytest.fixture
def session_factory():
    """In-memory SQLite database with all tables created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def search_client():
    client = MagicMock()
    client.search.return_value = SEARCH_RESULTS
    return client


@pytest.fixture
def file_accessor():
    return FakeFileAccessor({"doc123": DOCUMENT_TEXT})


@pytest.fixture
def build_orchestrator(search_client, file_accessor):
    """Factory for an orchestrator wired to scripted models and in-memory state."""

    def build(
        responses=(),
        default: Optional[BaseMessage] = None,
        summary_model: Optional[ScriptedChatModel] = None,
        max_messages: int = 10,
        max_tool_iterations: int = 5,
    ) -> Orchestrator:
        model = ScriptedChatModel(responses=list(responses), default=default)
        summary_model = summary_model or ScriptedChatModel(
            default=AIMessage(content="The user and assistant exchanged greetings.")
        )
        document_qa = DocumentQA(
            model=model,
            embeddings=DeterministicFakeEmbedding(size=32),
            file_accessor=file_accessor,
            chunk_processor=ChunkProcessor(chunk_size=200, chunk_overlap=20, length_function=len),
            k=3,
        )
        return Orchestrator(
            model=model,
            tools=[create_web_search_tool(max_results=3, client=search_client)],
            checkpointer=InMemorySaver(),
            summarizer=Summarizer(summary_model, max_messages),
            document_qa=document_qa,
            max_tool_iterations=max_tool_iterations,
        )

    return build


@pytest.fixture
def build_chat_service(build_orchestrator, session_factory):
    """Factory for a chat service over a scripted orchestrator and SQLite."""

    def build(title: str = "Weather in Paris", **orchestrator_kwargs: Any) -> ChatService:
        orchestrator = build_orchestrator(**orchestrator_kwargs)
        title_model = ScriptedChatModel(default=AIMessage(content=f'"{title}"'))
        return ChatService(orchestrator, session_factory, TitleGenerator(title_model))

    return build


@pytest.fixture
def run_turn():
    """Run one turn through an orchestrator and collect its event feed."""

    async def run(orchestrator: Orchestrator, message: str, thread_id: str = "thread-1", **fields: Any):
        turn = TurnInput(thread_id=thread_id, message=message, **fields)
        return [event async for event in orchestrator.stream_events(turn)]

    return run
