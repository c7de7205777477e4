"""Action request/outcome types shared by the parser, filter and dispatcher."""

from dataclasses import dataclass, field

from pydantic import BaseModel, model_validator

# "<provider>__<action>" routes to a remote provider instead of a local tool.
REMOTE_SEPARATOR = "__"

# Canonical argument -> candidate keys, tried in order. Models often invent
# parameter names, so the first non-empty candidate wins.
ARGUMENT_ALIASES: dict[str, tuple[str, ...]] = {
    "file_path": ("file_path", "path", "filename", "file"),
    "content": ("content", "text", "data", "body"),
    "old_string": ("old_string", "old", "search", "find", "original"),
    "new_string": ("new_string", "new", "replace", "replacement"),
}


@dataclass
class ActionRequest:
    """A named action the model asked to run."""

    name: str
    arguments: dict[str, str] = field(default_factory=dict)

    @property
    def is_remote(self) -> bool:
        return split_remote_name(self.name) is not None


class ActionOutcome(BaseModel):
    """Result of dispatching exactly one action."""

    succeeded: bool = True
    output: str = ""
    error: str = ""
    status_code: int = 0

    @model_validator(mode="after")
    def _normalize_failure(self) -> "ActionOutcome":
        """Ensure failed outcomes always carry a reason and a non-zero code."""
        if not self.succeeded:
            if not (self.error or "").strip():
                self.error = (self.output or "").strip() or "Action failed"
            if self.status_code == 0:
                self.status_code = 1
        return self

    @classmethod
    def failure(cls, error: str, status_code: int = 1, output: str = "") -> "ActionOutcome":
        return cls(succeeded=False, error=error, status_code=status_code, output=output)


def split_remote_name(name: str) -> tuple[str, str] | None:
    """Split ``provider__action`` at the first separator.

    Returns ``None`` when the name carries no separator or either side is empty.
    """
    provider, sep, action = str(name or "").partition(REMOTE_SEPARATOR)
    if not sep or not provider or not action:
        return None
    return provider, action


def resolve_argument(
    arguments: dict[str, str],
    canonical: str,
    allow_empty: bool = False,
) -> str | None:
    """Return the first usable value among the aliases of ``canonical``.

    With ``allow_empty`` an explicitly supplied empty string counts as a value
    (an Edit that deletes text passes ``new_string=""``).
    """
    for key in ARGUMENT_ALIASES.get(canonical, (canonical,)):
        if key not in arguments:
            continue
        value = arguments[key]
        if value or (allow_empty and value is not None):
            return value
    return None


def describe_received_arguments(arguments: dict[str, str], max_value_chars: int = 50) -> str:
    """Render received arguments for missing-argument diagnostics."""
    if not arguments:
        return "(none)"
    parts = []
    for key, value in arguments.items():
        shown = str(value)
        if len(shown) > max_value_chars:
            shown = shown[:max_value_chars] + "..."
        parts.append(f"[{key}={shown}]")
    return " ".join(parts)


def missing_argument_outcome(canonical: str, arguments: dict[str, str]) -> ActionOutcome:
    """Failed outcome for a required argument no alias supplied."""
    return ActionOutcome.failure(
        f"Missing '{canonical}' parameter. Received parameters: "
        f"{describe_received_arguments(arguments)}"
    )
