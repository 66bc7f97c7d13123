"""Tools registry: the tool executor handed to the orchestrator."""

from typing import Any

from airchat.errors import ToolExecutionError
from airchat.models.messages import SearchResult
from airchat.tools.base import ToolDefinition
from airchat.tools.web_search import SearchCapability, create_web_search_tool
from airchat.utils.logging import get_logger

logger = get_logger(__name__)


class ToolsRegistry:
    """Registry for managing the tools the model may call."""

    def __init__(self, search: SearchCapability | None = None):
        """Initialize tools registry.

        Args:
            search: Search backend; the web_search tool is registered when given
        """
        self._tools: dict[str, ToolDefinition] = {}
        if search is not None:
            self.register_tool(create_web_search_tool(search))

    def register_tool(self, tool: ToolDefinition) -> None:
        """Register a new tool in the registry."""
        self._tools[tool.name] = tool

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    def get_openai_tools(self) -> list[dict[str, Any]]:
        return [tool.to_openai_tool() for tool in self._tools.values()]

    async def execute(self, name: str, arguments: str) -> list[SearchResult]:
        """Run a registered tool.

        Args:
            name: Tool name
            arguments: Already-parsed tool argument

        Raises:
            ToolExecutionError: If the tool is unknown or fails
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolExecutionError(f"Unknown tool {name}")

        logger.debug(f"Executing tool: {name} with argument: {arguments[:100]}")
        try:
            results = await tool.handler(arguments)
        except ToolExecutionError:
            raise
        except Exception as e:
            logger.error(f"Tool {name} failed: {e}")
            raise ToolExecutionError(f"{name} failed: {e}") from e

        logger.debug(f"Tool {name} returned {len(results)} results")
        return results
