"""Bash tool for executing shell commands."""

import asyncio
import os
from typing import Any

from ollamacode.actions import ActionOutcome, missing_argument_outcome
from ollamacode.exceptions import ToolBlockedError
from ollamacode.logging import get_logger
from ollamacode.tools.registry import (
    Tool,
    extract_shell_base_commands,
    is_blocked_shell_command,
)

log = get_logger(__name__)

MAX_OUTPUT_CHARS = 10000


class BashTool(Tool):
    """Execute shell commands after a safety check and user confirmation."""

    name = "Bash"
    description = "Execute a shell command and return its output."
    parameters = {
        "command": "The shell command to execute (required)",
        "description": "Short description of what the command does",
        "timeout": "Timeout in seconds (optional)",
    }
    requires_confirmation = True

    def __init__(
        self,
        safe_mode: bool = True,
        allowed_commands: list[str] | None = None,
        blocked: list[str] | None = None,
        timeout: int = 30,
    ):
        self.safe_mode = safe_mode
        self.allowed_commands = {
            str(item).strip() for item in (allowed_commands or []) if str(item).strip()
        }
        self.blocked = list(blocked or [])
        self.timeout = max(1, int(timeout))

    def _is_command_safe(self, command: str) -> tuple[bool, str]:
        """Check if command is safe to execute.

        Blocked patterns apply always; the allowlist only in safe mode.

        Returns:
            Tuple of (is_safe, reason)
        """
        blocked, matched = is_blocked_shell_command(command, self.blocked)
        if blocked:
            if matched == "empty_command":
                return False, "Command is empty"
            if matched == "unparseable_command":
                return False, "Command is not parseable"
            return False, f"Command matches blocked pattern: {matched}"

        if not self.safe_mode:
            return True, ""

        base_commands = extract_shell_base_commands(command)
        if not base_commands:
            return False, "Command is not parseable"
        for base_cmd in base_commands:
            normalized = base_cmd.split("/")[-1]
            if base_cmd not in self.allowed_commands and normalized not in self.allowed_commands:
                return False, f"Command not allowed in safe mode: {base_cmd}"
        return True, ""

    def _resolve_timeout(self, raw: str | None) -> int:
        if not raw:
            return self.timeout
        try:
            return max(1, int(float(raw)))
        except ValueError:
            return self.timeout

    async def execute(self, arguments: dict[str, str], **kwargs: Any) -> ActionOutcome:
        """Run the command.

        Raises:
            ToolBlockedError if a blocked pattern or the safe-mode allowlist rejects it
        """
        command = (arguments.get("command") or "").strip()
        if not command:
            return missing_argument_outcome("command", arguments)

        is_safe, reason = self._is_command_safe(command)
        if not is_safe:
            log.warning("Blocked unsafe command", command=command, reason=reason)
            raise ToolBlockedError(self.name, reason)

        description = arguments.get("description") or f"Run: {command}"
        if not self.confirm(kwargs, description):
            return ActionOutcome.failure("Cancelled by user")

        timeout = self._resolve_timeout(arguments.get("timeout"))
        base = kwargs.get("_runtime_base_path")

        log.info("Executing shell command", command=command, timeout=timeout)
        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(base) if base is not None else None,
            env=os.environ.copy(),
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return ActionOutcome.failure(f"Command timed out after {timeout}s", status_code=124)

        stdout_text = stdout.decode("utf-8", errors="replace").strip()
        stderr_text = stderr.decode("utf-8", errors="replace").strip()

        output = stdout_text
        if stderr_text:
            output += f"\n[stderr] {stderr_text}" if output else f"[stderr] {stderr_text}"

        if len(output) > MAX_OUTPUT_CHARS:
            output = output[:MAX_OUTPUT_CHARS] + f"\n... [truncated, {len(output)} total chars]"

        returncode = process.returncode or 0
        if returncode != 0:
            return ActionOutcome(
                succeeded=False,
                output=output,
                error=stderr_text or f"Command exited with status {returncode}",
                status_code=returncode,
            )
        return ActionOutcome(succeeded=True, output=output, status_code=0)
