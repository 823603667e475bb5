"""Serialization of graph events into the chat event-stream protocol."""
import json
import logging
from typing import Any, Dict, FrozenSet, List, Optional

from langchain_core.messages import BaseMessage

from errors import OrchestrationError
from services.search import WEB_SEARCH_TOOL_NAME
from services.summarization import SUMMARY_TAG
from services.threads import TITLE_TAG
from state import message_text

logger = logging.getLogger(__name__)

INTERNAL_TAGS = frozenset({SUMMARY_TAG, TITLE_TAG})

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_event(event: str, data: str) -> str:
    return f"event: {event}\ndata: {data}\n"


def format_token(token: str) -> str:
    return f"{token}\n"


class StreamEmitter:
    """
    Translates one turn's ``astream_events`` feed into wire chunks.

    Also accumulates what the transcript needs once the turn completes:
    the assistant text and whether (and which URLs) web search returned.
    """

    def __init__(
        self,
        search_tool_name: str = WEB_SEARCH_TOOL_NAME,
        internal_tags: FrozenSet[str] = INTERNAL_TAGS,
    ):
        self.search_tool_name = search_tool_name
        self.internal_tags = internal_tags
        self.assistant_text = ""
        self.is_web_search = False
        self.urls: List[str] = []

    def thread_id_event(self, thread_id: str) -> str:
        return format_event("thread_id", thread_id)

    def title_event(self, title: str) -> str:
        return format_event("thread_title", title)

    def error_event(self, error: OrchestrationError) -> str:
        return format_event("error", json.dumps(error.to_payload()))

    def translate(self, event: Dict[str, Any]) -> Optional[str]:
        """Wire chunk for a graph event, or None if the caller should not see it."""
        kind = event.get("event")
        if kind == "on_chat_model_stream":
            return self._model_token(event)
        if kind == "on_tool_end" and event.get("name") == self.search_tool_name:
            return self._search_results(event)
        return None

    def _model_token(self, event: Dict[str, Any]) -> Optional[str]:
        if self.internal_tags.intersection(event.get("tags") or []):
            return None
        chunk = (event.get("data") or {}).get("chunk")
        if not isinstance(chunk, BaseMessage):
            return None
        token = message_text(chunk)
        if not token:
            return None
        self.assistant_text += token
        return format_token(token)

    def _search_results(self, event: Dict[str, Any]) -> Optional[str]:
        output = (event.get("data") or {}).get("output")
        content = output.content if isinstance(output, BaseMessage) else output
        if not content:
            return None
        if not isinstance(content, str):
            content = json.dumps(content)

        try:
            results = json.loads(content).get("results") or []
        except (ValueError, AttributeError):
            logger.warning("Search tool returned non-JSON output; not forwarding it")
            return None

        self.is_web_search = True
        self.urls.extend(r["url"] for r in results if isinstance(r, dict) and r.get("url"))
        return format_event("web_search", content)
