"""Tool base class, local handler table and action dispatch."""

import re
import shlex
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Callable

from ollamacode.actions import (
    REMOTE_SEPARATOR,
    ActionOutcome,
    ActionRequest,
    split_remote_name,
)
from ollamacode.confirmation import ConfirmationGate
from ollamacode.exceptions import (
    RemoteProviderError,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
)
from ollamacode.logging import get_logger

log = get_logger(__name__)

_ASSIGNMENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=.*$")
_SHELL_SEPARATOR_TOKENS = {";", "&&", "||", "|", "&"}
_SHELL_WRAPPER_TOKENS = {"sudo", "command", "builtin", "nohup", "time"}


def _compile_shell_pattern(pattern: str) -> re.Pattern[str]:
    """Compile regex pattern with literal fallback for invalid regex input."""
    try:
        return re.compile(pattern)
    except re.error:
        return re.compile(re.escape(pattern))


def _tokenize_shell_command(command: str) -> list[str]:
    """Tokenize shell command while preserving control operators."""
    lexer = shlex.shlex(command, posix=True, punctuation_chars=";&|")
    lexer.whitespace_split = True
    lexer.commenters = ""
    return list(lexer)


def _split_shell_segments(command: str) -> list[list[str]]:
    """Split shell command into tokenized segments separated by control operators."""
    tokens = _tokenize_shell_command(command)
    segments: list[list[str]] = []
    current: list[str] = []
    for token in tokens:
        if token in _SHELL_SEPARATOR_TOKENS:
            if current:
                segments.append(current)
                current = []
            continue
        current.append(token)
    if current:
        segments.append(current)
    return segments


def _extract_segment_base_command(tokens: list[str]) -> str:
    """Extract executable command token from a tokenized shell segment."""
    idx = 0
    while idx < len(tokens):
        token = str(tokens[idx]).strip()
        if not token:
            idx += 1
            continue
        if token in _SHELL_WRAPPER_TOKENS:
            idx += 1
            continue
        if _ASSIGNMENT_RE.match(token) and "/" not in token:
            idx += 1
            continue
        return token
    return ""


def extract_shell_base_commands(command: str) -> list[str]:
    """Extract base command token from each shell segment."""
    cleaned = str(command or "").strip()
    if not cleaned:
        return []
    try:
        segments = _split_shell_segments(cleaned)
    except ValueError:
        return []
    base_commands: list[str] = []
    for segment in segments:
        base = _extract_segment_base_command(segment)
        if base:
            base_commands.append(base)
    return base_commands


def is_blocked_shell_command(command: str, blocked_patterns: list[str]) -> tuple[bool, str]:
    """Evaluate command against blocked patterns using parsed command matching."""
    cleaned = str(command or "").strip()
    if not cleaned:
        return True, "empty_command"

    try:
        segments = _split_shell_segments(cleaned)
    except ValueError:
        return True, "unparseable_command"
    if not segments:
        return True, "unparseable_command"

    segment_texts = [" ".join(tokens) for tokens in segments]
    base_commands = [
        base
        for segment in segments
        if (base := _extract_segment_base_command(segment))
    ]
    if not base_commands:
        return True, "unparseable_command"

    for raw_pattern in blocked_patterns or []:
        pattern = str(raw_pattern or "").strip()
        if not pattern:
            continue
        compiled = _compile_shell_pattern(pattern)
        segment_level_pattern = bool(re.search(r"\s", pattern))
        targets = segment_texts if segment_level_pattern else base_commands
        matcher = compiled.search if segment_level_pattern else compiled.match
        for target in targets:
            if matcher(target):
                return True, pattern
    return False, ""


class Tool(ABC):
    """Base class for local action handlers.

    ``requires_confirmation`` documents the handler's contract with the
    confirmation gate: handlers that set it must call ``self.confirm`` before
    any irreversible side effect (file write, deletion, process spawn,
    network mutation). Read-only handlers leave it ``False``.
    """

    name: str = ""
    description: str = ""
    parameters: dict[str, str] = {}
    requires_confirmation: bool = False

    @abstractmethod
    async def execute(self, arguments: dict[str, str], **kwargs: Any) -> ActionOutcome:
        """Execute the tool.

        Args:
            arguments: Arguments exactly as parsed from model output
            **kwargs: Runtime values injected by the registry (``_confirm``,
                ``_runtime_base_path``)

        Returns:
            ActionOutcome describing success or failure
        """
        pass

    def confirm(self, kwargs: dict[str, Any], description: str) -> bool:
        """Ask the injected confirmation gate about this tool's side effect."""
        callback = kwargs.get("_confirm")
        if not callable(callback):
            log.warning("No confirmation gate configured; declining", tool=self.name)
            return False
        return bool(callback(self.name, description))

    @staticmethod
    def resolve_path(raw: str, kwargs: dict[str, Any]) -> Path:
        """Resolve a model-supplied path against the runtime base path."""
        path = Path(raw).expanduser()
        if not path.is_absolute():
            base = kwargs.get("_runtime_base_path")
            path = Path(base) / path if base is not None else path
        return path.resolve()

    def describe(self) -> str:
        """Render a prompt-friendly description of the tool and its arguments."""
        lines = [f"**{self.name}** - {self.description}"]
        for arg, text in self.parameters.items():
            lines.append(f"  - {arg}: {text}")
        return "\n".join(lines)


class ToolRegistry:
    """Local handler table plus routing for remote ``provider__action`` names."""

    def __init__(
        self,
        gate: ConfirmationGate | None = None,
        remote: Any | None = None,
        base_path: Path | str | None = None,
    ):
        self._tools: dict[str, Tool] = {}
        self.gate = gate or ConfirmationGate()
        self.remote = remote
        self._runtime_base_path = Path.cwd()
        self.set_runtime_base_path(base_path or Path.cwd())

    def set_runtime_base_path(self, base_path: Path | str) -> None:
        """Set base path used to resolve relative file arguments."""
        self._runtime_base_path = Path(base_path).expanduser().resolve()

    @property
    def runtime_base_path(self) -> Path:
        return self._runtime_base_path

    def register(self, tool: Tool) -> None:
        """Register a tool.

        Raises:
            ValueError: if the name is empty, duplicated, or uses the remote separator
        """
        if not tool.name:
            raise ValueError("Tool must have a name")
        if REMOTE_SEPARATOR in tool.name:
            raise ValueError(
                f"Tool name '{tool.name}' must not contain '{REMOTE_SEPARATOR}'"
            )
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")

        log.debug("Registering tool", tool=tool.name)
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            ToolNotFoundError if not found
        """
        if name not in self._tools:
            raise ToolNotFoundError(name)
        return self._tools[name]

    def describe_tools(self, allowed: Sequence[str] | None = None) -> str:
        """Prompt-ready description of the tools a persona may use."""
        allowed_set = set(allowed or ())
        return "\n\n".join(
            tool.describe()
            for tool in self._tools.values()
            if not allowed_set or tool.name in allowed_set
        )

    async def execute(self, name: str, arguments: dict[str, str]) -> ActionOutcome:
        """Execute a local tool by name.

        Raises:
            ToolNotFoundError if tool not found
            ToolExecutionError if the handler raised
        """
        tool = self.get(name)
        try:
            log.info("Executing tool", tool=name, args=list(arguments.keys()))
            result = await tool.execute(
                dict(arguments),
                _confirm=self.gate.confirm,
                _runtime_base_path=self.runtime_base_path,
            )
        except ToolError:
            raise
        except Exception as e:
            log.error("Tool execution failed", tool=name, error=str(e))
            raise ToolExecutionError(name, str(e)) from e

        if not isinstance(result, ActionOutcome):
            raise ToolExecutionError(name, "Tool returned invalid result payload")
        log.info("Tool executed", tool=name, success=result.succeeded)
        return result

    async def _dispatch_remote(self, provider: str, action_name: str, action: ActionRequest) -> ActionOutcome:
        if self.remote is None:
            return ActionOutcome.failure(
                f"Remote provider support is not configured (requested {action.name})"
            )
        if not self.gate.confirm(f"MCP:{action_name}", f"Execute remote tool {provider}/{action_name}?"):
            return ActionOutcome.failure("Cancelled by user")

        result = await self.remote.invoke_remote(provider, action_name, dict(action.arguments))
        if result.succeeded:
            return ActionOutcome(succeeded=True, output=result.content, status_code=0)
        return ActionOutcome.failure(
            result.error or "Remote tool reported an error",
            output=result.content,
        )

    async def dispatch(self, action: ActionRequest) -> ActionOutcome:
        """Route one action and normalize every result. Never raises."""
        remote = split_remote_name(action.name)
        try:
            if remote is not None:
                provider, action_name = remote
                log.info("Routing remote action", provider=provider, action=action_name)
                return await self._dispatch_remote(provider, action_name, action)
            return await self.execute(action.name, action.arguments)
        except ToolNotFoundError as e:
            log.warning("Unknown action", action=action.name)
            return ActionOutcome.failure(str(e))
        except RemoteProviderError as e:
            log.warning("Remote action failed", action=action.name, error=str(e))
            return ActionOutcome.failure(str(e))
        except ToolError as e:
            return ActionOutcome.failure(str(e))
        except Exception as e:
            log.error("Dispatch failed", action=action.name, error=str(e))
            return ActionOutcome.failure(f"Action '{action.name}' failed: {e}")

    async def close(self) -> None:
        """Close tools that hold network clients."""
        for tool in self._tools.values():
            close = getattr(tool, "close", None)
            if callable(close):
                await close()

    async def dispatch_all(
        self,
        actions: Sequence[ActionRequest],
        on_start: Callable[[int, int, ActionRequest], None] | None = None,
        on_result: Callable[[ActionRequest, ActionOutcome], None] | None = None,
    ) -> list[ActionOutcome]:
        """Dispatch actions one at a time, in order."""
        outcomes: list[ActionOutcome] = []
        total = len(actions)
        for idx, action in enumerate(actions, start=1):
            if on_start is not None:
                on_start(idx, total, action)
            outcome = await self.dispatch(action)
            if on_result is not None:
                on_result(action, outcome)
            outcomes.append(outcome)
        return outcomes
