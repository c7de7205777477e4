"""Tools package for ollamacode."""

from pathlib import Path
from typing import Any

from ollamacode.config import Config
from ollamacode.confirmation import ConfirmationGate
from ollamacode.logging import get_logger
from ollamacode.tools.registry import Tool, ToolRegistry
from ollamacode.tools.bash import BashTool
from ollamacode.tools.read import ReadTool
from ollamacode.tools.write import WriteTool
from ollamacode.tools.edit import EditTool
from ollamacode.tools.glob import GlobTool
from ollamacode.tools.grep import GrepTool
from ollamacode.tools.web_fetch import WebFetchTool
from ollamacode.tools.web_search import WebSearchTool

log = get_logger(__name__)


def create_tools(config: Config, safe_mode: bool | None = None) -> list[Tool]:
    """Instantiate the tools listed in ``config.tools.enabled``."""
    tools_cfg = config.tools
    effective_safe_mode = config.agent.safe_mode if safe_mode is None else safe_mode
    factories = {
        "Bash": lambda: BashTool(
            safe_mode=effective_safe_mode,
            allowed_commands=tools_cfg.bash.allowed_commands,
            blocked=tools_cfg.bash.blocked,
            timeout=tools_cfg.bash.timeout,
        ),
        "Read": lambda: ReadTool(max_bytes=tools_cfg.read.max_bytes),
        "Write": WriteTool,
        "Edit": EditTool,
        "Glob": GlobTool,
        "Grep": GrepTool,
        "WebFetch": lambda: WebFetchTool(max_chars=tools_cfg.web_fetch.max_chars),
        "WebSearch": lambda: WebSearchTool(config=tools_cfg.web_search),
    }
    tools: list[Tool] = []
    for name in tools_cfg.enabled:
        factory = factories.get(name)
        if factory is None:
            log.warning("Unknown tool in config", tool=name)
            continue
        tools.append(factory())
    return tools


def build_tool_registry(
    config: Config,
    gate: ConfirmationGate,
    remote: Any | None = None,
    base_path: Path | str | None = None,
    safe_mode: bool | None = None,
) -> ToolRegistry:
    """Registry with the configured local tools and optional remote provider."""
    registry = ToolRegistry(gate=gate, remote=remote, base_path=base_path)
    for tool in create_tools(config, safe_mode=safe_mode):
        registry.register(tool)
    return registry


__all__ = [
    "Tool",
    "ToolRegistry",
    "build_tool_registry",
    "create_tools",
    "BashTool",
    "ReadTool",
    "WriteTool",
    "EditTool",
    "GlobTool",
    "GrepTool",
    "WebFetchTool",
    "WebSearchTool",
]
