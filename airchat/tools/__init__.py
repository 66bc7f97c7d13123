"""Tools the model can call during a turn."""

from airchat.tools.base import ToolDefinition, ToolExecutor, parse_tool_query
from airchat.tools.registry import ToolsRegistry
from airchat.tools.web_search import WEB_SEARCH_TOOL_NAME, create_web_search_tool, format_search_results

__all__ = [
    "WEB_SEARCH_TOOL_NAME",
    "ToolDefinition",
    "ToolExecutor",
    "ToolsRegistry",
    "create_web_search_tool",
    "format_search_results",
    "parse_tool_query",
]
