"""Browser tools and the bridge that executes them."""

from functools import partial
from typing import Any

import httpx

from copilot.tools.base import ToolBackend, ToolDefinition, ToolParameter
from copilot.utils.logging import get_logger

logger = get_logger(__name__)


class BrowserBridgeBackend:
    """Forwards tool calls to the browser process over HTTP.

    The browser exposes one endpoint per tool at `{base_url}/tools/{name}`
    that accepts the call arguments as a JSON body.
    """

    def __init__(self, base_url: str | None, timeout: float = 30.0, client: httpx.AsyncClient | None = None):
        """Initialize the bridge.

        Args:
            base_url: Bridge address; tool calls fail while it is unset
            timeout: Seconds to wait for a tool to finish
            client: HTTP client (created lazily when omitted)
        """
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url or "", timeout=self.timeout)
        return self._client

    async def execute(self, tool_name: str, args: dict[str, Any]) -> Any:
        if not self.base_url:
            raise RuntimeError("Browser bridge is not configured")

        logger.debug(f"Forwarding tool {tool_name} to browser bridge with args {args}")
        response = await self.client.post(f"/tools/{tool_name}", json=args)
        response.raise_for_status()

        if not response.content:
            return None
        return response.json()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()


def create_browser_tools(backend: ToolBackend) -> list[ToolDefinition]:
    """Declare the browser tools, each executed through the backend."""
    return [
        ToolDefinition(
            name="search_history",
            description="Search the browsing history for pages matching a query. Returns recent pages visited.",
            parameters=[
                ToolParameter(
                    name="query",
                    type="string",
                    description="Search query to match against page titles and URLs",
                ),
                ToolParameter(
                    name="limit",
                    type="number",
                    description="Maximum number of results to return (default: 10)",
                ),
            ],
            executor=partial(backend.execute, "search_history"),
        ),
        ToolDefinition(
            name="get_bookmarks",
            description="Get saved bookmarks, optionally filtered by search query.",
            parameters=[
                ToolParameter(
                    name="query",
                    type="string",
                    description="Optional search query to filter bookmarks",
                ),
            ],
            executor=partial(backend.execute, "get_bookmarks"),
        ),
        ToolDefinition(
            name="analyze_page_content",
            description="Get detailed content from the current page including full text, structure, and metadata.",
            executor=partial(backend.execute, "analyze_page_content"),
        ),
        ToolDefinition(
            name="capture_screenshot",
            description="Capture a screenshot of the current page (only for vision models).",
            executor=partial(backend.execute, "capture_screenshot"),
        ),
        ToolDefinition(
            name="get_page_metadata",
            description="Get metadata about the current page (title, URL, description, canonical URL, etc.)",
            executor=partial(backend.execute, "get_page_metadata"),
        ),
        ToolDefinition(
            name="web_search",
            description=(
                "Perform a web search by opening a new tab with the search query and capturing the results. "
                "Returns search results, optionally with a screenshot."
            ),
            parameters=[
                ToolParameter(
                    name="query",
                    type="string",
                    description="The search query to look up",
                    required=True,
                ),
                ToolParameter(
                    name="capture_screenshot",
                    type="boolean",
                    description="Whether to capture a screenshot of the search results (default: true)",
                ),
            ],
            executor=partial(backend.execute, "web_search"),
        ),
    ]
