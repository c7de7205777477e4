"""Grep tool for searching file contents."""

import asyncio
import re
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from ollamacode.actions import ActionOutcome, missing_argument_outcome
from ollamacode.logging import get_logger
from ollamacode.tools.registry import Tool

log = get_logger(__name__)

MAX_RESULTS = 100
OUTPUT_MODES = ("files_with_matches", "content")
_SKIPPED_DIRS = {".git", "__pycache__", "node_modules", ".venv"}


def _iter_files(root: Path) -> Iterator[Path]:
    if root.is_file():
        yield root
        return
    for candidate in sorted(root.rglob("*")):
        if any(part in _SKIPPED_DIRS for part in candidate.relative_to(root).parts):
            continue
        if candidate.is_file():
            yield candidate


def search(root: Path, regex: re.Pattern[str], output_mode: str, limit: int = MAX_RESULTS) -> list[str]:
    """Return ``path`` or ``path:line:text`` hits, at most ``limit``."""
    results: list[str] = []
    for file_path in _iter_files(root):
        try:
            text = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            continue
        for lineno, line in enumerate(text.splitlines(), start=1):
            if not regex.search(line):
                continue
            if output_mode == "content":
                results.append(f"{file_path}:{lineno}:{line}")
            else:
                results.append(str(file_path))
            if len(results) >= limit:
                return results
            if output_mode != "content":
                break
    return results


class GrepTool(Tool):
    """Search file contents with a regular expression."""

    name = "Grep"
    description = "Search for a regex pattern in files."
    parameters = {
        "pattern": "Regular expression to search for (required)",
        "path": "File or directory to search (default: current directory)",
        "output_mode": "'files_with_matches' (default) or 'content'",
    }

    async def execute(self, arguments: dict[str, str], **kwargs: Any) -> ActionOutcome:
        pattern = arguments.get("pattern") or ""
        if not pattern:
            return missing_argument_outcome("pattern", arguments)

        output_mode = (arguments.get("output_mode") or "files_with_matches").strip()
        if output_mode not in OUTPUT_MODES:
            return ActionOutcome.failure(
                f"Invalid output_mode '{output_mode}'. Use one of: {', '.join(OUTPUT_MODES)}"
            )

        try:
            regex = re.compile(pattern)
        except re.error as e:
            return ActionOutcome.failure(f"Invalid pattern: {e}")

        root = self.resolve_path(arguments.get("path") or ".", kwargs)
        if not root.exists():
            return ActionOutcome.failure(f"Path not found: {root}")

        loop = asyncio.get_running_loop()
        results = await loop.run_in_executor(None, lambda: search(root, regex, output_mode))
        log.debug("Grep finished", pattern=pattern, hits=len(results))

        if not results:
            return ActionOutcome(succeeded=True, output=f"No matches found for: {pattern}")
        return ActionOutcome(succeeded=True, output="\n".join(results))
