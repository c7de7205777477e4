"""Read tool for reading file contents."""

from typing import Any

from ollamacode.actions import ActionOutcome, missing_argument_outcome, resolve_argument
from ollamacode.logging import get_logger
from ollamacode.tools.registry import Tool

log = get_logger(__name__)


def _as_int(raw: str | None) -> int | None:
    if not raw:
        return None
    try:
        value = int(float(raw))
    except ValueError:
        return None
    return value if value > 0 else None


class ReadTool(Tool):
    """Read file contents."""

    name = "Read"
    description = "Read the contents of a file."
    parameters = {
        "file_path": "Path to the file to read (required)",
        "offset": "Line number to start reading from (1-indexed)",
        "limit": "Maximum number of lines to read",
    }

    def __init__(self, max_bytes: int = 100_000):
        self.max_bytes = max_bytes

    async def execute(self, arguments: dict[str, str], **kwargs: Any) -> ActionOutcome:
        raw_path = resolve_argument(arguments, "file_path")
        if not raw_path:
            return missing_argument_outcome("file_path", arguments)

        file_path = self.resolve_path(raw_path, kwargs)
        if not file_path.exists():
            return ActionOutcome.failure(f"File not found: {raw_path}")
        if not file_path.is_file():
            return ActionOutcome.failure(f"Not a file: {raw_path}")

        file_size = file_path.stat().st_size
        if file_size > self.max_bytes:
            return ActionOutcome.failure(
                f"File too large: {file_size} bytes (max {self.max_bytes})"
            )

        try:
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            log.error("Read failed", path=str(file_path), error=str(e))
            return ActionOutcome.failure(f"Failed to read file: {e}")

        offset = _as_int(arguments.get("offset"))
        limit = _as_int(arguments.get("limit"))
        if offset or limit:
            lines = content.splitlines()
            if offset:
                lines = lines[offset - 1:]
            if limit:
                lines = lines[:limit]
            content = "\n".join(lines)

        return ActionOutcome(succeeded=True, output=content)
