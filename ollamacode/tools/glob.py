"""Glob tool for finding files by pattern."""

import asyncio
from pathlib import Path
from typing import Any

from ollamacode.actions import ActionOutcome, missing_argument_outcome
from ollamacode.logging import get_logger
from ollamacode.tools.registry import Tool

log = get_logger(__name__)

MAX_RESULTS = 100


def find_files(root: Path, pattern: str, limit: int = MAX_RESULTS) -> list[Path]:
    """Find regular files under ``root`` matching ``pattern``.

    A bare name pattern (``*.py``) matches at any depth; a pattern with a
    directory part (``src/**/*.py``) is applied relative to ``root``.
    """
    if "/" in pattern or "**" in pattern:
        candidates = root.glob(pattern)
    else:
        candidates = root.rglob(pattern)
    matches: list[Path] = []
    for candidate in candidates:
        if candidate.is_file():
            matches.append(candidate)
        if len(matches) >= limit:
            break
    return sorted(matches)


class GlobTool(Tool):
    """Find files by pattern."""

    name = "Glob"
    description = "Find files matching a glob pattern."
    parameters = {
        "pattern": "Glob pattern, e.g. '*.py' or 'src/**/*.ts' (required)",
        "path": "Directory to search from (default: current directory)",
    }

    async def execute(self, arguments: dict[str, str], **kwargs: Any) -> ActionOutcome:
        pattern = (arguments.get("pattern") or "").strip()
        if not pattern:
            return missing_argument_outcome("pattern", arguments)

        root = self.resolve_path(arguments.get("path") or ".", kwargs)
        if not root.is_dir():
            return ActionOutcome.failure(f"Directory not found: {root}")

        loop = asyncio.get_running_loop()
        matches = await loop.run_in_executor(None, lambda: find_files(root, pattern))

        if not matches:
            return ActionOutcome(succeeded=True, output=f"No files found matching: {pattern}")
        return ActionOutcome(
            succeeded=True,
            output="\n".join(str(match) for match in matches),
        )
