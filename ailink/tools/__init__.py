"""Operation schemas and the dispatcher."""

from ailink.tools.dispatcher import Dispatcher, Toolset
from ailink.tools.registry import CORE_TOOLS, ToolSpec, get_all_schemas, get_tool

__all__ = [
    "Dispatcher",
    "Toolset",
    "CORE_TOOLS",
    "ToolSpec",
    "get_all_schemas",
    "get_tool",
]
