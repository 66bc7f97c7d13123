"""Web search tool."""

from collections.abc import Awaitable, Callable

from pydantic import BaseModel, Field

from airchat.errors import ToolExecutionError
from airchat.models.messages import SearchResult
from airchat.tools.base import ToolDefinition
from airchat.utils.logging import get_logger

logger = get_logger(__name__)

WEB_SEARCH_TOOL_NAME = "web_search"
MAX_RESULTS = 5

SearchCapability = Callable[[str], Awaitable[list[SearchResult]]]


class WebSearchInput(BaseModel):
    """Input schema for the web search tool."""

    query: str = Field(..., description="The search query")


def create_web_search_tool(search: SearchCapability) -> ToolDefinition:
    """Wrap a search backend as the ``web_search`` tool.

    Args:
        search: Async callable returning results for a query
    """

    async def web_search_handler(query: str) -> list[SearchResult]:
        query = query.strip()
        if not query:
            return []

        logger.info(f"Running web search for: {query[:80]}")
        try:
            results = await search(query)
        except ToolExecutionError:
            raise
        except Exception as e:
            logger.error(f"Web search failed: {e}")
            raise ToolExecutionError(f"Web search failed: {e}") from e

        return list(results)[:MAX_RESULTS]

    return ToolDefinition(
        name=WEB_SEARCH_TOOL_NAME,
        description="Search the web for current information",
        input_schema_class=WebSearchInput,
        handler=web_search_handler,
    )


def format_search_results(results: list[SearchResult]) -> str:
    """Render results as the Markdown carried by a tool message."""
    if not results:
        return "No results found."
    return "\n\n".join(result.to_markdown() for result in results)


async def _no_backend(query: str) -> list[SearchResult]:
    raise ToolExecutionError("No search backend configured")


# Wire definition only; requests never reach this handler
WEB_SEARCH_TOOL_DEFINITION = create_web_search_tool(_no_backend).to_openai_tool()
