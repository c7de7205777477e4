"""Persona capability filter."""

from collections.abc import Iterable
from dataclasses import dataclass, field

from ollamacode.actions import ActionRequest


@dataclass
class FilterResult:
    """Actions split by whether the active persona may run them."""

    permitted: list[ActionRequest] = field(default_factory=list)
    blocked: list[ActionRequest] = field(default_factory=list)

    @property
    def blocked_names(self) -> list[str]:
        return [action.name for action in self.blocked]


def is_action_allowed(name: str, allowed: Iterable[str] | None) -> bool:
    """Exact-name membership test; an empty allowed set means unrestricted.

    Remote names are compared whole (``fs__read_file``), never by their
    local portion.
    """
    allowed_set = set(allowed or ())
    return not allowed_set or name in allowed_set


def filter_actions(
    actions: Iterable[ActionRequest],
    allowed: Iterable[str] | None,
) -> FilterResult:
    """Partition actions into permitted and blocked, preserving input order."""
    allowed_set = frozenset(allowed or ())
    result = FilterResult()
    for action in actions:
        if is_action_allowed(action.name, allowed_set):
            result.permitted.append(action)
        else:
            result.blocked.append(action)
    return result
