"""Edit tool for in-place string replacement."""

from typing import Any

from ollamacode.actions import ActionOutcome, missing_argument_outcome, resolve_argument
from ollamacode.logging import get_logger
from ollamacode.tools.registry import Tool

log = get_logger(__name__)


def _count_lines(text: str) -> int:
    return len(text.splitlines()) if text else 0


class EditTool(Tool):
    """Replace every occurrence of a string in a file.

    A ``<file>.bak`` copy of the previous content is written before the file
    is modified.
    """

    name = "Edit"
    description = "Replace all occurrences of old_string with new_string in a file."
    parameters = {
        "file_path": "Path to the file to edit (required)",
        "old_string": "Exact text to replace (required)",
        "new_string": "Replacement text (required, may be empty)",
    }
    requires_confirmation = True

    async def execute(self, arguments: dict[str, str], **kwargs: Any) -> ActionOutcome:
        raw_path = resolve_argument(arguments, "file_path")
        if not raw_path:
            return missing_argument_outcome("file_path", arguments)
        old_string = resolve_argument(arguments, "old_string")
        if not old_string:
            return missing_argument_outcome("old_string", arguments)
        new_string = resolve_argument(arguments, "new_string", allow_empty=True)
        if new_string is None:
            return missing_argument_outcome("new_string", arguments)

        file_path = self.resolve_path(raw_path, kwargs)
        if not file_path.is_file():
            return ActionOutcome.failure(f"File not found: {raw_path}")

        try:
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return ActionOutcome.failure(f"Failed to read file: {e}")

        count = content.count(old_string)
        if count == 0:
            return ActionOutcome.failure("String not found in file")

        removed = _count_lines(old_string)
        added = _count_lines(new_string)
        if not self.confirm(
            kwargs,
            f"Apply changes? ({count} occurrence(s), -{removed}/+{added} lines)",
        ):
            return ActionOutcome.failure("Cancelled by user")

        backup_path = file_path.with_name(file_path.name + ".bak")
        try:
            backup_path.write_text(content, encoding="utf-8")
            file_path.write_text(content.replace(old_string, new_string), encoding="utf-8")
        except OSError as e:
            log.error("Edit failed", path=str(file_path), error=str(e))
            return ActionOutcome.failure(f"Failed to write file: {e}")

        log.info("File edited", path=str(file_path), replacements=count)
        return ActionOutcome(
            succeeded=True,
            output=(
                f"File edited successfully (-{removed}/+{added} lines, "
                f"{count} replacement(s)). Backup: {backup_path}"
            ),
        )
