"""Main entry point for ollamacode."""

import asyncio
import sys
from pathlib import Path

import typer

from ollamacode import __version__
from ollamacode.cli import TerminalUI
from ollamacode.config import Config, set_config
from ollamacode.confirmation import ConfirmationGate
from ollamacode.exceptions import ConfigurationError, LLMError
from ollamacode.llm import create_provider
from ollamacode.logging import configure_logging, get_logger
from ollamacode.mcp import MCPClient
from ollamacode.orchestrator import ConversationOrchestrator
from ollamacode.personas import PersonaRegistry, get_persona_registry
from ollamacode.tools import build_tool_registry

log = get_logger(__name__)

app = typer.Typer(help="ollamacode - a terminal coding agent for local Ollama models")


def load_config(
    config_path: str = "",
    model: str = "",
    auto_approve: bool = False,
    max_iterations: int | None = None,
    unsafe: bool = False,
) -> Config:
    """Load configuration and apply command-line overrides."""
    cfg = Config.from_yaml(Path(config_path)) if config_path else Config.load()
    if model:
        cfg.model.model = model
    if auto_approve:
        cfg.agent.auto_approve = True
    if max_iterations is not None:
        cfg.agent.max_iterations = max_iterations
    if unsafe:
        cfg.agent.safe_mode = False
    return cfg


async def _repl(
    orchestrator: ConversationOrchestrator,
    ui: TerminalUI,
    personas: PersonaRegistry,
) -> None:
    ui.print_welcome(orchestrator.persona.identifier, orchestrator.model or "")
    while True:
        try:
            raw = ui.prompt("> ")
        except (EOFError, KeyboardInterrupt):
            print()
            return

        parsed = ui.handle_special_command(raw)
        if parsed is None:
            continue
        command, argument = parsed
        if command == "EXIT":
            return
        if command == "AGENTS":
            ui.print_agents(personas.list_personas(), active=orchestrator.persona.identifier)
            continue
        if command == "AGENT":
            if not argument:
                ui.print_info(f"Current agent: {orchestrator.persona.identifier}")
                continue
            if not personas.is_known(argument):
                ui.print_warning(f"Unknown agent '{argument}', using general")
            orchestrator.set_persona(personas.lookup(argument))
            ui.print_info(f"Switched to agent: {orchestrator.persona.identifier}")
            continue
        if not argument:
            continue

        try:
            await orchestrator.run(argument)
        except LLMError:
            # already narrated; keep the session alive
            continue


async def run_session(cfg: Config, prompt: str, agent: str) -> int:
    """Run one prompt, or the interactive loop when ``prompt`` is empty."""
    ui = TerminalUI()
    personas = get_persona_registry()
    if agent and not personas.is_known(agent):
        ui.print_warning(f"Unknown agent '{agent}', using general")
    persona = personas.lookup(agent or cfg.agent.default_persona)

    gate = ConfirmationGate(auto_approve=cfg.agent.auto_approve, callback=ui.confirm)
    provider = create_provider(
        provider=cfg.model.provider,
        model=cfg.model.model,
        base_url=cfg.model.base_url,
        temperature=cfg.model.temperature,
        max_tokens=cfg.model.max_tokens,
        api_key=cfg.model.api_key or None,
        timeout=cfg.model.timeout,
    )
    mcp = MCPClient(cfg.mcp) if cfg.mcp.enabled and cfg.mcp.servers else None
    try:
        registry = build_tool_registry(cfg, gate, remote=mcp, base_path=Path.cwd())
    except Exception:
        await provider.close()
        raise

    try:
        remote_tools = await mcp.describe_remote_tools() if mcp else ""
        orchestrator = ConversationOrchestrator(
            provider=provider,
            registry=registry,
            ui=ui,
            persona=persona,
            model=cfg.model.model,
            max_iterations=cfg.agent.max_iterations,
            auto_approve=cfg.agent.auto_approve,
            temperature=cfg.model.temperature,
            max_tokens=cfg.model.max_tokens,
            snippet_chars=cfg.agent.snippet_chars,
            remote_tools=remote_tools,
        )
        if not prompt:
            await _repl(orchestrator, ui, personas)
            return 0
        try:
            await orchestrator.run(prompt)
        except LLMError:
            return 1
        return 0
    finally:
        await registry.close()
        await provider.close()
        if mcp is not None:
            await mcp.close_all()


@app.command()
def run(
    prompt: str = typer.Argument("", help="Prompt to run; omit for interactive mode"),
    agent: str = typer.Option("", "-a", "--agent", help="Agent persona (explorer, coder, runner, ...)"),
    model: str = typer.Option("", "-m", "--model", help="Override model"),
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    auto_approve: bool = typer.Option(False, "-y", "--auto-approve", help="Run tools without asking"),
    max_iterations: int | None = typer.Option(None, "--max-iterations", help="Model calls per prompt"),
    unsafe: bool = typer.Option(False, "--unsafe", help="Disable the safe-mode command allowlist"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Run a prompt or start an interactive session."""
    try:
        cfg = load_config(config, model, auto_approve, max_iterations, unsafe)
    except (ConfigurationError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        raise typer.Exit(code=2)
    set_config(cfg)
    configure_logging("DEBUG" if verbose else None)

    try:
        code = asyncio.run(run_session(cfg, prompt, agent))
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise typer.Exit(code=2)
    except KeyboardInterrupt:
        log.info("Shutting down...")
        code = 130
    raise typer.Exit(code=code)


@app.command()
def agents() -> None:
    """List available agent personas."""
    TerminalUI().print_agents(get_persona_registry().list_personas())


@app.command()
def version() -> None:
    """Show version information."""
    print(f"ollamacode v{__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
