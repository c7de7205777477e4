"""Bounded propose/execute/observe conversation loop."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from ollamacode.actions import ActionOutcome, ActionRequest
from ollamacode.capabilities import filter_actions
from ollamacode.confirmation import BatchDecision, BatchDecisionKind
from ollamacode.exceptions import LLMError
from ollamacode.instructions import (
    RESULTS_FOLLOWUP_TEMPLATE,
    InstructionLoader,
    build_system_prompt,
    get_instruction_loader,
)
from ollamacode.llm import LLMProvider, Message
from ollamacode.logging import get_logger
from ollamacode.parser import ActionParser
from ollamacode.personas import Persona
from ollamacode.tools.registry import ToolRegistry

log = get_logger(__name__)

MALFORMED_INTENT_WARNING = "Tool call block detected but no valid tools parsed"
NO_EXECUTABLE_TOOLS_WARNING = "No executable tools for current agent."


class ConversationUI(Protocol):
    """Narration surface the orchestrator talks to."""

    def print_message(self, role: str, content: str) -> None: ...

    def print_info(self, message: str) -> None: ...

    def print_warning(self, message: str) -> None: ...

    def print_error(self, message: str) -> None: ...

    def print_tool_call(self, index: int, total: int, name: str, arguments: dict[str, str]) -> None: ...

    def print_tool_result(self, name: str, outcome: ActionOutcome) -> None: ...

    def select_actions(self, actions: Sequence[ActionRequest]) -> BatchDecision: ...


class TurnStatus(str, Enum):
    """How an invocation ended."""

    COMPLETED = "completed"
    MALFORMED_INTENT = "malformed_intent"
    ALL_BLOCKED = "all_blocked"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"
    ITERATION_LIMIT = "iteration_limit"


@dataclass
class TurnResult:
    status: TurnStatus
    messages: list[Message] = field(default_factory=list)
    iterations: int = 0
    final_text: str = ""


def format_outcome_summary(
    actions: Sequence[ActionRequest],
    outcomes: Sequence[ActionOutcome],
    followup: str,
) -> str:
    """Render executed actions and their outcomes, in execution order."""
    lines = ["Tool execution results:", ""]
    for action, outcome in zip(actions, outcomes):
        lines.append(f"Tool: {action.name}")
        lines.append(f"Exit Code: {outcome.status_code}")
        lines.append(f"Success: {'true' if outcome.succeeded else 'false'}")
        if outcome.error:
            lines.append(f"Error: {outcome.error}")
        if outcome.output:
            lines.append(f"Output: {outcome.output}")
        lines.append("")
    lines.append(followup.strip())
    return "\n".join(lines)


class ConversationOrchestrator:
    """Drive the model until it answers without actions or a bound is hit.

    Each ``run`` starts a fresh ``[system, user]`` history. The persona is
    captured when ``run`` starts; ``set_persona`` during a run only affects
    the next one.
    """

    def __init__(
        self,
        provider: LLMProvider,
        registry: ToolRegistry,
        ui: ConversationUI,
        persona: Persona,
        model: str | None = None,
        max_iterations: int = 10,
        auto_approve: bool = False,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        snippet_chars: int = 500,
        remote_tools: str = "",
        loader: InstructionLoader | None = None,
        parser: ActionParser | None = None,
    ):
        self.provider = provider
        self.registry = registry
        self.ui = ui
        self.persona = persona
        self.model = model
        self.max_iterations = max(0, int(max_iterations))
        self.auto_approve = auto_approve
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.snippet_chars = max(1, int(snippet_chars))
        self.remote_tools = remote_tools
        self.loader = loader or get_instruction_loader()
        self.parser = parser or ActionParser()

    def set_persona(self, persona: Persona) -> None:
        self.persona = persona

    def build_system_prompt(self, persona: Persona) -> str:
        tools = self.registry.describe_tools(sorted(persona.allowed_actions))
        base = persona.render_prompt(tools, loader=self.loader)
        return build_system_prompt(base, remote_tools=self.remote_tools, loader=self.loader)

    def build_messages(self, user_input: str, persona: Persona) -> list[Message]:
        return [
            Message(role="system", content=self.build_system_prompt(persona)),
            Message(role="user", content=user_input),
        ]

    def _decide(self, permitted: list[ActionRequest]) -> BatchDecision:
        if self.auto_approve:
            return BatchDecision.execute_all()
        decision = self.ui.select_actions(permitted)
        log.info("Batch decision", kind=decision.kind.value, count=len(permitted))
        return decision

    async def _execute(self, selected: list[ActionRequest]) -> list[ActionOutcome]:
        def on_start(index: int, total: int, action: ActionRequest) -> None:
            self.ui.print_tool_call(index, total, action.name, action.arguments)

        def on_result(action: ActionRequest, outcome: ActionOutcome) -> None:
            self.ui.print_tool_result(action.name, outcome)

        return await self.registry.dispatch_all(selected, on_start=on_start, on_result=on_result)

    async def run(self, user_input: str) -> TurnResult:
        """Process one user prompt.

        Raises:
            LLMError if a model call fails; the failure is narrated first
        """
        persona = self.persona
        messages = self.build_messages(user_input, persona)
        temperature = persona.effective_temperature(self.temperature)
        followup = self.loader.load(RESULTS_FOLLOWUP_TEMPLATE)
        iterations = 0

        while True:
            if iterations > self.max_iterations:
                self.ui.print_warning(
                    f"Maximum iterations ({self.max_iterations}) reached. Stopping."
                )
                log.warning("Iteration limit reached", iterations=iterations)
                return TurnResult(TurnStatus.ITERATION_LIMIT, messages, iterations)
            iterations += 1

            log.info(
                "Calling model",
                model=self.model,
                persona=persona.identifier,
                iteration=iterations,
                msg_count=len(messages),
            )
            try:
                response = await self.provider.complete(
                    messages,
                    model=self.model,
                    temperature=temperature,
                    max_tokens=self.max_tokens,
                )
            except LLMError as e:
                self.ui.print_error(f"Model call failed: {e}")
                log.error("Model call failed", error=str(e))
                raise

            raw = response.content or ""
            parsed = self.parser.parse(raw)
            if parsed.residual_text:
                self.ui.print_message("assistant", parsed.residual_text)

            if not parsed.has_block_markers:
                messages.append(Message(role="assistant", content=raw))
                return TurnResult(TurnStatus.COMPLETED, messages, iterations, parsed.residual_text)

            if parsed.is_malformed:
                snippet = raw[:self.snippet_chars]
                self.ui.print_warning(MALFORMED_INTENT_WARNING)
                self.ui.print_info(f"Raw response: {snippet}")
                log.warning("Malformed tool block", format=parsed.format, snippet=snippet)
                return TurnResult(TurnStatus.MALFORMED_INTENT, messages, iterations, parsed.residual_text)

            filtered = filter_actions(parsed.actions, persona.allowed_actions)
            if filtered.blocked:
                names = ", ".join(filtered.blocked_names)
                self.ui.print_warning(f"Tools not allowed for {persona.identifier} agent: {names}")
                log.info("Blocked actions", persona=persona.identifier, actions=filtered.blocked_names)
            if not filtered.permitted:
                self.ui.print_warning(NO_EXECUTABLE_TOOLS_WARNING)
                return TurnResult(TurnStatus.ALL_BLOCKED, messages, iterations, parsed.residual_text)

            decision = self._decide(filtered.permitted)
            if decision.kind == BatchDecisionKind.CANCEL:
                self.ui.print_info("Cancelled.")
                return TurnResult(TurnStatus.CANCELLED, messages, iterations, parsed.residual_text)
            if decision.kind == BatchDecisionKind.SKIP_ALL:
                self.ui.print_info("Skipped all tool calls.")
                return TurnResult(TurnStatus.SKIPPED, messages, iterations, parsed.residual_text)
            if decision.kind == BatchDecisionKind.REDIRECT:
                # the action-bearing response is dropped; the model sees only the new request
                messages.append(Message(role="user", content=decision.custom_input))
                continue

            selected = decision.select(filtered.permitted)
            if not selected:
                self.ui.print_info("No tools selected.")
                return TurnResult(TurnStatus.SKIPPED, messages, iterations, parsed.residual_text)

            outcomes = await self._execute(selected)
            messages.append(Message(role="assistant", content=raw))
            messages.append(Message(
                role="user",
                content=format_outcome_summary(selected, outcomes, followup),
            ))


def describe_arguments(arguments: dict[str, Any], max_chars: int = 60) -> str:
    """One-line ``key=value`` rendering used by batch menus."""
    parts = []
    for key, value in arguments.items():
        text = " ".join(str(value).split())
        if len(text) > max_chars:
            text = text[:max_chars] + "..."
        parts.append(f"{key}={text}")
    return ", ".join(parts)
