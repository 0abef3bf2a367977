"""Tool registry for path-based tool lookup."""

from typing import Dict, List, Mapping, Optional

from .models import ParamSpec, ToolDefinition, ToolMode

_ROOT_PARAM = ParamSpec(
    type="string",
    description="Root to run in; defaults to the server's default root",
    default=None,
)
_KEYWORDS_PARAM = ParamSpec(
    type="array",
    items={"type": "string"},
    description="Arguments appended to the command",
    example=["--", "TODO"],
)


def _default_tools() -> List[ToolDefinition]:
    """Tool table used when the configuration defines none."""
    return [
        ToolDefinition(
            name="listRoots",
            path="/roots",
            description="List the directories tools may run in",
        ),
        ToolDefinition(
            name="searchCode",
            path="/search",
            description="Search file contents with ripgrep",
            command="rg",
            args=["--line-number", "--no-heading", "--color", "never"],
            params={"root": _ROOT_PARAM, "keywords": _KEYWORDS_PARAM},
        ),
        ToolDefinition(
            name="listFiles",
            path="/files",
            description="List files that ripgrep would search",
            command="rg",
            args=["--files"],
            params={"root": _ROOT_PARAM, "keywords": _KEYWORDS_PARAM},
        ),
        ToolDefinition(
            name="gitStatus",
            path="/git/status",
            description="Show working tree status",
            command="git",
            args=["status", "--short", "--branch"],
            params={"root": _ROOT_PARAM},
        ),
        ToolDefinition(
            name="gitLog",
            path="/git/log",
            description="Show recent commits",
            command="git",
            args=["log", "--oneline", "--max-count", "50"],
            params={"root": _ROOT_PARAM, "keywords": _KEYWORDS_PARAM},
        ),
        ToolDefinition(
            name="checkPatch",
            path="/git/apply-check",
            description="Check whether a unified diff applies cleanly",
            command="git",
            args=["apply", "--check", "-"],
            mode=ToolMode.STDIN,
            params={
                "root": _ROOT_PARAM,
                "input": ParamSpec(type="string", description="Unified diff to check"),
            },
        ),
    ]


class ToolRegistry:
    """Registry of configured tools, keyed by name and by HTTP path."""

    def __init__(self, tools: Optional[Mapping[str, ToolDefinition]] = None):
        """Initialize the registry.

        Args:
            tools: Tool table keyed by name; the default table is used when empty
        """
        if not tools:
            tools = {tool.name: tool for tool in _default_tools()}
        self.tools: Dict[str, ToolDefinition] = dict(tools)
        self._by_path: Dict[str, ToolDefinition] = {tool.path: tool for tool in self.tools.values()}

    def get_tool(self, name: str) -> ToolDefinition:
        """Get tool by name.

        Raises:
            KeyError: If tool not found
        """
        if name not in self.tools:
            raise KeyError(f"Tool '{name}' not found")
        return self.tools[name]

    def find_by_path(self, path: str) -> Optional[ToolDefinition]:
        """Get the tool served at ``path``, if any."""
        return self._by_path.get(path)

    def list_tools(self) -> Dict[str, ToolDefinition]:
        return self.tools.copy()
