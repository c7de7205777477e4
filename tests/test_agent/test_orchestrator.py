from collections.abc import Sequence
from typing import Any

import pytest

from ollamacode.actions import ActionOutcome, ActionRequest
from ollamacode.confirmation import BatchDecision, ConfirmationGate
from ollamacode.exceptions import LLMAPIError, LLMError
from ollamacode.instructions import InstructionLoader
from ollamacode.llm import LLMProvider, LLMResponse, Message
from ollamacode.orchestrator import (
    MALFORMED_INTENT_WARNING,
    NO_EXECUTABLE_TOOLS_WARNING,
    ConversationOrchestrator,
    TurnStatus,
    format_outcome_summary,
)
from ollamacode.personas import get_persona_registry
from ollamacode.tools.bash import BashTool
from ollamacode.tools.read import ReadTool
from ollamacode.tools.registry import Tool, ToolRegistry


def _call(*units: tuple[str, dict[str, str]]) -> str:
    body = ""
    for name, params in units:
        inner = "".join(f'<parameter name="{k}">{v}</parameter>' for k, v in params.items())
        body += f'<invoke name="{name}">{inner}</invoke>'
    return f"<function_calls>{body}</function_calls>"


class _ScriptedProvider(LLMProvider):
    def __init__(self, responses: list[str], repeat_last: bool = False, error: Exception | None = None):
        self.responses = list(responses)
        self.repeat_last = repeat_last
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        messages: list[Message],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        self.calls.append({"messages": list(messages), "temperature": temperature, "model": model})
        if self.error is not None:
            raise self.error
        if self.repeat_last and len(self.responses) == 1:
            return LLMResponse(content=self.responses[0])
        return LLMResponse(content=self.responses.pop(0))


class _RecordingUI:
    def __init__(self, decision: BatchDecision | None = None):
        self.decision = decision
        self.events: list[tuple[str, Any]] = []
        self.selections: list[list[str]] = []

    def print_message(self, role: str, content: str) -> None:
        self.events.append(("message", (role, content)))

    def print_info(self, message: str) -> None:
        self.events.append(("info", message))

    def print_warning(self, message: str) -> None:
        self.events.append(("warning", message))

    def print_error(self, message: str) -> None:
        self.events.append(("error", message))

    def print_tool_call(self, index: int, total: int, name: str, arguments: dict[str, str]) -> None:
        self.events.append(("tool_call", (index, total, name)))

    def print_tool_result(self, name: str, outcome: ActionOutcome) -> None:
        self.events.append(("tool_result", (name, outcome.succeeded)))

    def select_actions(self, actions: Sequence[ActionRequest]) -> BatchDecision:
        if self.decision is None:
            raise AssertionError("select_actions must not be called")
        self.selections.append([a.name for a in actions])
        return self.decision

    def of(self, kind: str) -> list[Any]:
        return [payload for event_kind, payload in self.events if event_kind == kind]


class _EchoTool(Tool):
    name = "Echo"
    description = "Echo text back."
    parameters = {"text": "Text to echo"}

    def __init__(self):
        self.executed: list[str] = []

    async def execute(self, arguments: dict[str, str], **kwargs: Any) -> ActionOutcome:
        self.executed.append(arguments.get("text", ""))
        return ActionOutcome(succeeded=True, output=arguments.get("text", ""))


def _orchestrator(
    tmp_path,
    provider: LLMProvider,
    ui: _RecordingUI,
    persona: str = "general",
    tools: Sequence[Tool] = (),
    **kwargs: Any,
) -> ConversationOrchestrator:
    registry = ToolRegistry(gate=ConfirmationGate(auto_approve=True), base_path=tmp_path)
    for tool in tools:
        registry.register(tool)
    return ConversationOrchestrator(
        provider=provider,
        registry=registry,
        ui=ui,
        persona=get_persona_registry().lookup(persona),
        model="test-model",
        loader=InstructionLoader(personal_dir=tmp_path / "no-overrides"),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_plain_answer_completes_after_one_call(tmp_path):
    provider = _ScriptedProvider(["All done."])
    ui = _RecordingUI()

    result = await _orchestrator(tmp_path, provider, ui).run("hello")

    assert result.status == TurnStatus.COMPLETED
    assert result.iterations == 1
    assert result.final_text == "All done."
    assert ui.of("message") == [("assistant", "All done.")]
    assert [m.role for m in result.messages] == ["system", "user", "assistant"]
    assert provider.calls[0]["messages"][1].content == "hello"


@pytest.mark.asyncio
async def test_read_then_answer_feeds_outcome_summary_back(tmp_path):
    (tmp_path / "notes.txt").write_text("hello", encoding="utf-8")
    first = _call(("Read", {"file_path": "notes.txt"}))
    provider = _ScriptedProvider([first, "The file says hello."])
    ui = _RecordingUI()

    result = await _orchestrator(
        tmp_path, provider, ui, tools=[ReadTool()], auto_approve=True
    ).run("read notes.txt")

    assert result.status == TurnStatus.COMPLETED
    assert len(provider.calls) == 2
    second_call = provider.calls[1]["messages"]
    assert second_call[2].role == "assistant"
    assert second_call[2].content == first
    summary = second_call[3].content
    assert second_call[3].role == "user"
    assert summary.startswith("Tool execution results:")
    assert "Tool: Read" in summary
    assert "Exit Code: 0" in summary
    assert "Success: true" in summary
    assert "Output: hello" in summary
    assert summary.endswith("Only use more tools if absolutely necessary.")
    assert ui.of("tool_call") == [(1, 1, "Read")]
    assert ui.of("tool_result") == [("Read", True)]
    assert result.messages[-1].content == "The file says hello."


@pytest.mark.asyncio
async def test_malformed_block_ends_turn_with_bounded_snippet(tmp_path):
    raw = 'Trying.\n<function_calls><invoke name="Read"><parameter name="file_path">x'
    provider = _ScriptedProvider([raw])
    ui = _RecordingUI()

    result = await _orchestrator(tmp_path, provider, ui, snippet_chars=12).run("go")

    assert result.status == TurnStatus.MALFORMED_INTENT
    assert MALFORMED_INTENT_WARNING in ui.of("warning")
    assert ui.of("info") == [f"Raw response: {raw[:12]}"]
    assert ui.of("message") == [("assistant", "Trying.")]
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_all_blocked_actions_end_turn_without_execution(tmp_path):
    provider = _ScriptedProvider([_call(("Bash", {"command": "ls"}))])
    ui = _RecordingUI()

    result = await _orchestrator(
        tmp_path, provider, ui, persona="explorer", tools=[BashTool()], auto_approve=True
    ).run("list files")

    assert result.status == TurnStatus.ALL_BLOCKED
    assert ui.of("warning") == [
        "Tools not allowed for explorer agent: Bash",
        NO_EXECUTABLE_TOOLS_WARNING,
    ]
    assert ui.of("tool_call") == []
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_blocked_actions_are_dropped_and_permitted_ones_run(tmp_path):
    (tmp_path / "a.txt").write_text("data", encoding="utf-8")
    provider = _ScriptedProvider([
        _call(("Read", {"file_path": "a.txt"}), ("Bash", {"command": "rm a.txt"})),
        "ok",
    ])
    ui = _RecordingUI()

    result = await _orchestrator(
        tmp_path, provider, ui, persona="explorer", tools=[ReadTool(), BashTool()], auto_approve=True
    ).run("inspect")

    assert result.status == TurnStatus.COMPLETED
    assert ui.of("tool_call") == [(1, 1, "Read")]
    summary = provider.calls[1]["messages"][3].content
    assert "Tool: Bash" not in summary
    assert (tmp_path / "a.txt").exists()


@pytest.mark.asyncio
async def test_cancel_stops_without_executing(tmp_path):
    echo = _EchoTool()
    provider = _ScriptedProvider([_call(("Echo", {"text": "x"}))])
    ui = _RecordingUI(BatchDecision.cancel())

    result = await _orchestrator(tmp_path, provider, ui, tools=[echo]).run("go")

    assert result.status == TurnStatus.CANCELLED
    assert echo.executed == []
    assert ui.of("info") == ["Cancelled."]
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_skip_all_stops_without_executing(tmp_path):
    echo = _EchoTool()
    provider = _ScriptedProvider([_call(("Echo", {"text": "x"}))])
    ui = _RecordingUI(BatchDecision.skip_all())

    result = await _orchestrator(tmp_path, provider, ui, tools=[echo]).run("go")

    assert result.status == TurnStatus.SKIPPED
    assert echo.executed == []
    assert ui.of("info") == ["Skipped all tool calls."]


@pytest.mark.asyncio
async def test_redirect_replaces_proposal_with_new_request(tmp_path):
    echo = _EchoTool()
    provider = _ScriptedProvider([_call(("Echo", {"text": "x"})), "hi"])
    ui = _RecordingUI(BatchDecision.redirect("just say hi"))

    result = await _orchestrator(tmp_path, provider, ui, tools=[echo]).run("go")

    assert result.status == TurnStatus.COMPLETED
    assert echo.executed == []
    roles = [(m.role, m.content) for m in provider.calls[1]["messages"][1:]]
    assert roles == [("user", "go"), ("user", "just say hi")]
    assert result.iterations == 2


@pytest.mark.asyncio
async def test_selected_subset_runs_in_original_order(tmp_path):
    echo = _EchoTool()
    provider = _ScriptedProvider([
        _call(("Echo", {"text": "a"}), ("Echo", {"text": "b"}), ("Echo", {"text": "c"})),
        "done",
    ])
    ui = _RecordingUI(BatchDecision.execute_selected([2, 0]))

    await _orchestrator(tmp_path, provider, ui, tools=[echo]).run("go")

    assert echo.executed == ["a", "c"]
    assert ui.selections == [["Echo", "Echo", "Echo"]]
    summary = provider.calls[1]["messages"][3].content
    assert "Output: a" in summary
    assert "Output: b" not in summary
    assert summary.index("Output: a") < summary.index("Output: c")


@pytest.mark.asyncio
async def test_empty_selection_is_reported_and_ends_turn(tmp_path):
    echo = _EchoTool()
    provider = _ScriptedProvider([_call(("Echo", {"text": "a"}))])
    ui = _RecordingUI(BatchDecision.execute_selected([9]))

    result = await _orchestrator(tmp_path, provider, ui, tools=[echo]).run("go")

    assert result.status == TurnStatus.SKIPPED
    assert ui.of("info") == ["No tools selected."]
    assert echo.executed == []


@pytest.mark.asyncio
async def test_iteration_bound_limits_model_calls(tmp_path):
    echo = _EchoTool()
    provider = _ScriptedProvider([_call(("Echo", {"text": "again"}))], repeat_last=True)
    ui = _RecordingUI()

    result = await _orchestrator(
        tmp_path, provider, ui, tools=[echo], auto_approve=True, max_iterations=2
    ).run("loop forever")

    assert result.status == TurnStatus.ITERATION_LIMIT
    assert len(provider.calls) == 3
    assert ui.of("warning")[-1] == "Maximum iterations (2) reached. Stopping."


@pytest.mark.asyncio
async def test_model_failure_is_narrated_and_raised(tmp_path):
    provider = _ScriptedProvider([], error=LLMAPIError("connection refused"))
    ui = _RecordingUI()

    with pytest.raises(LLMError):
        await _orchestrator(tmp_path, provider, ui).run("go")

    assert ui.of("error") == ["Model call failed: connection refused"]


@pytest.mark.asyncio
async def test_persona_temperature_override_is_sent(tmp_path):
    coder_provider = _ScriptedProvider(["ok"])
    general_provider = _ScriptedProvider(["ok"])

    await _orchestrator(tmp_path, coder_provider, _RecordingUI(), persona="coder", temperature=0.7).run("x")
    await _orchestrator(tmp_path, general_provider, _RecordingUI(), temperature=0.7).run("x")

    assert coder_provider.calls[0]["temperature"] == 0.2
    assert general_provider.calls[0]["temperature"] == 0.7
    assert coder_provider.calls[0]["model"] == "test-model"


def test_system_prompt_describes_only_permitted_tools(tmp_path):
    orchestrator = _orchestrator(
        tmp_path, _ScriptedProvider([]), _RecordingUI(), persona="explorer", tools=[ReadTool(), BashTool()]
    )

    prompt = orchestrator.build_system_prompt(orchestrator.persona)

    assert "**Read**" in prompt
    assert "**Bash**" not in prompt


def test_format_outcome_summary_includes_errors():
    text = format_outcome_summary(
        [ActionRequest(name="Bash")],
        [ActionOutcome.failure("Cancelled by user")],
        "Next steps?",
    )

    assert text == (
        "Tool execution results:\n\n"
        "Tool: Bash\nExit Code: 1\nSuccess: false\nError: Cancelled by user\n\n"
        "Next steps?"
    )
