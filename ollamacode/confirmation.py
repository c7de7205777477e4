"""Confirmation gate and batch decisions.

Two levels of user consent exist. Per action, a handler asks the
``ConfirmationGate`` before any irreversible side effect. Per batch, the
orchestrator asks the UI which of the permitted actions to run at all; that
answer is a ``BatchDecision``.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from rich.prompt import Confirm

from ollamacode.actions import ActionRequest
from ollamacode.logging import get_logger

log = get_logger(__name__)

ConfirmCallback = Callable[[str, str], bool]


def ask_yes_no(action_name: str, description: str = "") -> bool:
    """Terminal yes/no prompt, defaulting to no."""
    question = f"Execute {action_name}?"
    if description:
        question = f"{question} ({description})"
    return bool(Confirm.ask(question, default=False))


class ConfirmationGate:
    """Decide whether a single action may perform its side effect.

    Resolution order: auto-approve flag, then the registered callback, then a
    direct yes/no prompt on the terminal.
    """

    def __init__(
        self,
        auto_approve: bool = False,
        callback: ConfirmCallback | None = None,
        prompt: ConfirmCallback | None = None,
    ):
        self.auto_approve = auto_approve
        self._callback = callback
        self._prompt = prompt or ask_yes_no

    def set_callback(self, callback: ConfirmCallback | None) -> None:
        """Register the interactive confirmation callback."""
        self._callback = callback

    def confirm(self, action_name: str, description: str = "") -> bool:
        if self.auto_approve:
            return True
        if callable(self._callback):
            approved = bool(self._callback(action_name, description))
        else:
            approved = bool(self._prompt(action_name, description))
        log.info("Confirmation answered", action=action_name, approved=approved)
        return approved


class BatchDecisionKind(str, Enum):
    EXECUTE_ALL = "execute_all"
    EXECUTE_SELECTED = "execute_selected"
    SKIP_ALL = "skip_all"
    CANCEL = "cancel"
    REDIRECT = "redirect"


@dataclass
class BatchDecision:
    """What the user chose to do with a batch of permitted actions."""

    kind: BatchDecisionKind
    selected_indices: list[int] = field(default_factory=list)
    custom_input: str = ""

    @classmethod
    def execute_all(cls) -> "BatchDecision":
        return cls(BatchDecisionKind.EXECUTE_ALL)

    @classmethod
    def execute_selected(cls, indices: Sequence[int]) -> "BatchDecision":
        return cls(BatchDecisionKind.EXECUTE_SELECTED, selected_indices=list(indices))

    @classmethod
    def skip_all(cls) -> "BatchDecision":
        return cls(BatchDecisionKind.SKIP_ALL)

    @classmethod
    def cancel(cls) -> "BatchDecision":
        return cls(BatchDecisionKind.CANCEL)

    @classmethod
    def redirect(cls, text: str) -> "BatchDecision":
        return cls(BatchDecisionKind.REDIRECT, custom_input=text)

    def select(self, actions: Sequence[ActionRequest]) -> list[ActionRequest]:
        """Return the chosen actions in their original order.

        Out-of-range and duplicate indices are ignored.
        """
        if self.kind == BatchDecisionKind.EXECUTE_ALL:
            return list(actions)
        if self.kind != BatchDecisionKind.EXECUTE_SELECTED:
            return []
        chosen = sorted({idx for idx in self.selected_indices if 0 <= idx < len(actions)})
        return [actions[idx] for idx in chosen]
