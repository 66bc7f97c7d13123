"""Base types and definitions for tools."""

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import BaseModel

from airchat.errors import ToolArgumentError
from airchat.models.messages import SearchResult

ToolHandler = Callable[[str], Awaitable[list[SearchResult]]]

# Keys tried in order when a model wraps its query in a JSON object
QUERY_KEYS = ("query", "q", "search_query", "keyword", "keywords", "text", "input", "prompt")


class ToolExecutor(Protocol):
    """Runs a tool by name; raises ToolExecutionError on failure."""

    async def execute(self, name: str, arguments: str) -> list[SearchResult]: ...


@dataclass
class ToolDefinition:
    """Definition of a tool available to the model."""

    name: str
    description: str
    input_schema_class: type[BaseModel]
    handler: ToolHandler

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input."""
        return self.input_schema_class.model_json_schema()

    def to_openai_tool(self) -> dict[str, Any]:
        """Function-calling definition in the OpenAI wire format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.get_json_schema(),
            },
        }


def parse_tool_query(raw_arguments: str) -> str:
    """Extract the query argument from a model-issued tool call.

    A JSON object is searched for the first non-empty string under one of
    QUERY_KEYS. Text that does not start with ``{`` is taken literally as the
    query.

    Raises:
        ToolArgumentError: If the arguments are empty, or look like JSON but hold no usable query
    """
    text = raw_arguments.strip()

    if not text.startswith("{"):
        if not text:
            raise ToolArgumentError("Tool call carried no arguments")
        return text

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ToolArgumentError(f"Arguments are not valid JSON ({e.msg})") from e

    if isinstance(data, dict):
        for key in QUERY_KEYS:
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value

    raise ToolArgumentError(f"No query found in arguments: {text[:100]}")
