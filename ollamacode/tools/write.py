"""Write tool for creating or overwriting files."""

from typing import Any

from ollamacode.actions import ActionOutcome, missing_argument_outcome, resolve_argument
from ollamacode.logging import get_logger
from ollamacode.tools.registry import Tool

log = get_logger(__name__)


class WriteTool(Tool):
    """Write content to files.

    Creating a new file needs no confirmation; overwriting an existing one
    asks the gate first.
    """

    name = "Write"
    description = "Create or overwrite a file with content."
    parameters = {
        "file_path": "Path to the file to write (required)",
        "content": "Content to write to the file (required)",
    }
    requires_confirmation = True

    async def execute(self, arguments: dict[str, str], **kwargs: Any) -> ActionOutcome:
        raw_path = resolve_argument(arguments, "file_path")
        if not raw_path:
            return missing_argument_outcome("file_path", arguments)
        content = resolve_argument(arguments, "content", allow_empty=True)
        if content is None:
            return missing_argument_outcome("content", arguments)

        file_path = self.resolve_path(raw_path, kwargs)
        if file_path.is_dir():
            return ActionOutcome.failure(f"Path is a directory: {raw_path}")
        if file_path.exists() and not self.confirm(kwargs, "File exists. Overwrite?"):
            return ActionOutcome.failure("Cancelled by user")

        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_text(content, encoding="utf-8")
        except OSError as e:
            log.error("Write failed", path=str(file_path), error=str(e))
            return ActionOutcome.failure(f"Failed to write file: {e}")

        return ActionOutcome(
            succeeded=True,
            output=f"Written {len(content)} chars to {file_path}",
        )
