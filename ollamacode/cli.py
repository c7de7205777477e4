"""Terminal presentation for ollamacode."""

import os
import sys
from collections.abc import Sequence
from typing import Any

from rich.prompt import Prompt

from ollamacode.actions import ActionOutcome, ActionRequest
from ollamacode.confirmation import BatchDecision, BatchDecisionKind, ask_yes_no
from ollamacode.logging import get_logger
from ollamacode.orchestrator import describe_arguments

log = get_logger(__name__)

RESULT_PREVIEW_CHARS = 200

MENU_HELP = (
    "[Enter/a] execute all  [1,3] execute selected  [s] skip all  "
    "[m] modify request  [q] cancel"
)


def parse_batch_choice(choice: str, count: int) -> BatchDecision | None:
    """Translate a menu answer into a decision.

    Returns ``None`` for input that should be asked again. ``m`` yields a
    redirect with empty text; the caller collects the replacement request.
    """
    answer = (choice or "").strip().lower()
    if answer in ("", "a", "all", "y", "yes"):
        return BatchDecision.execute_all()
    if answer in ("s", "skip", "n", "no"):
        return BatchDecision.skip_all()
    if answer in ("q", "quit", "cancel"):
        return BatchDecision.cancel()
    if answer in ("m", "modify"):
        return BatchDecision.redirect("")

    indices: list[int] = []
    for part in answer.split(","):
        part = part.strip()
        if not part:
            continue
        if not part.isdigit():
            return None
        number = int(part)
        if number < 1 or number > count:
            return None
        indices.append(number - 1)
    if not indices:
        return None
    return BatchDecision.execute_selected(indices)


class TerminalUI:
    """Plain terminal narration with optional ANSI role badges."""

    def __init__(self):
        self._ansi_enabled = sys.stdout.isatty() and not bool(os.environ.get("NO_COLOR"))

    def _styled_role_prefix(self, role: str) -> str | None:
        """Return colored role prefix when ANSI output is enabled."""
        if not self._ansi_enabled:
            return None
        styles = {
            "user": "\033[97;44m [USER] \033[0m",
            "assistant": "\033[30;102m [ASSISTANT] \033[0m",
            "system": "\033[30;103m [SYSTEM] \033[0m",
            "tool": "\033[30;106m [TOOL] \033[0m",
        }
        return styles.get(role.lower(), f"[{role.upper()}]")

    def print_welcome(self, persona: str, model: str) -> None:
        print("=== ollamacode ===")
        print(f"Model: {model}  Agent: {persona}")
        print("Type '/help' for commands.\n")

    def print_help(self) -> None:
        print(
            "\nCommands:\n"
            "  /help           - Show this help message\n"
            "  /agent [name]   - Show or switch the active agent\n"
            "  /agents         - List available agents\n"
            "  /clear          - Clear the screen\n"
            "  /exit           - Exit\n"
        )

    def print_message(self, role: str, content: str) -> None:
        """Print a message with styling."""
        styled_prefix = self._styled_role_prefix(role)
        if styled_prefix:
            print(f"{styled_prefix} {content}")
            return
        print(f"[{role.upper()}] {content}")

    def print_info(self, message: str) -> None:
        print(message)

    def print_error(self, error: str) -> None:
        """Print an error message."""
        print(f"Error: {error}")

    def print_warning(self, warning: str) -> None:
        """Print a warning message."""
        print(f"Warning: {warning}")

    def print_tool_call(self, index: int, total: int, name: str, arguments: dict[str, Any]) -> None:
        print(f"[TOOL {index}/{total}] {name}: {describe_arguments(arguments)}")

    def print_tool_result(self, name: str, outcome: ActionOutcome) -> None:
        text = outcome.output if outcome.succeeded else outcome.error
        if len(text) > RESULT_PREVIEW_CHARS:
            text = text[:RESULT_PREVIEW_CHARS] + "..."
        status = "OK" if outcome.succeeded else f"FAILED ({outcome.status_code})"
        print(f"[TOOL RESULT] {name}: {status} {text}".rstrip())

    def print_agents(self, personas: Sequence[Any], active: str = "") -> None:
        for persona in personas:
            marker = "*" if persona.identifier == active else " "
            tools = ", ".join(sorted(persona.allowed_actions)) or "all tools"
            print(f" {marker} {persona.identifier:<10} {persona.description} [{tools}]")

    def select_actions(self, actions: Sequence[ActionRequest]) -> BatchDecision:
        """Ask which of the proposed actions to execute."""
        print(f"\nThe model wants to run {len(actions)} tool(s):")
        for idx, action in enumerate(actions, start=1):
            print(f"  {idx}. {action.name}({describe_arguments(action.arguments)})")
        print(MENU_HELP)

        while True:
            answer = Prompt.ask("Choice", default="", show_default=False)
            decision = parse_batch_choice(answer, len(actions))
            if decision is None:
                self.print_warning(f"Invalid choice: {answer}")
                continue
            if decision.kind == BatchDecisionKind.REDIRECT:
                text = Prompt.ask("New request").strip()
                if not text:
                    self.print_warning("Empty request; choose again.")
                    continue
                return BatchDecision.redirect(text)
            return decision

    def confirm(self, action_name: str, description: str = "") -> bool:
        """Ask for confirmation."""
        return ask_yes_no(action_name, description)

    def prompt(self, prompt_text: str = "> ") -> str:
        """Prompt for input."""
        return input(prompt_text)

    def clear_screen(self) -> None:
        if self._ansi_enabled:
            print("\033[2J\033[H", end="", flush=True)
        else:
            print("\n" + "=" * 50 + "\n")

    def handle_special_command(self, cmd: str) -> tuple[str, str] | None:
        """Parse a slash command.

        Returns ``(command, argument)`` for commands the caller acts on,
        ``("PROMPT", text)`` for ordinary input, or ``None`` when handled here.
        """
        cmd = cmd.strip()
        if not cmd.startswith("/"):
            return ("PROMPT", cmd)

        parts = cmd.split(None, 1)
        command = parts[0].lower()
        args = parts[1].strip() if len(parts) > 1 else ""

        if command in ("/help", "/h", "/?"):
            self.print_help()
            return None
        if command == "/agent":
            return ("AGENT", args)
        if command == "/agents":
            return ("AGENTS", "")
        if command == "/clear":
            self.clear_screen()
            return None
        if command in ("/exit", "/quit", "/q"):
            return ("EXIT", "")
        self.print_error(f"Unknown command: {command}")
        return None
