"""Web search tool offered to the primary agent."""
import os
from typing import Any, Dict, Optional

from langchain_core.tools import BaseTool, tool
from tavily import TavilyClient

WEB_SEARCH_TOOL_NAME = "web_search"


def create_web_search_tool(max_results: int = 3, client: Optional[TavilyClient] = None) -> BaseTool:
    """Build the Tavily-backed search tool, returning at most ``max_results`` hits."""
    tavily_client = client or TavilyClient(api_key=os.getenv("TAVILY_API_KEY"))

    @tool(WEB_SEARCH_TOOL_NAME)
    def web_search(query: str) -> Dict[str, Any]:
        """Search the web for up-to-date information. Returns result titles, URLs and content."""
        return tavily_client.search(query=query, max_results=max_results)

    return web_search
