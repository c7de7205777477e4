"""Persona value type and the static persona registry."""

from dataclasses import dataclass

from ollamacode.instructions import (
    SYSTEM_PROMPT_TEMPLATE,
    InstructionLoader,
    get_instruction_loader,
)

DEFAULT_PERSONA = "general"


@dataclass(frozen=True)
class Persona:
    """A named capability profile.

    ``allowed_actions`` empty means every action is permitted. A persona
    without ``prompt_template`` uses the default system prompt; one without
    ``temperature_override`` uses the configured temperature.
    """

    identifier: str
    description: str = ""
    allowed_actions: frozenset[str] = frozenset()
    prompt_template: str | None = None
    temperature_override: float | None = None

    @property
    def is_unrestricted(self) -> bool:
        return not self.allowed_actions

    def effective_temperature(self, default: float) -> float:
        if self.temperature_override is None:
            return default
        return self.temperature_override

    def render_prompt(self, tools: str, loader: InstructionLoader | None = None) -> str:
        """Render this persona's base prompt with the tool descriptions filled in."""
        loader = loader or get_instruction_loader()
        return loader.render(self.prompt_template or SYSTEM_PROMPT_TEMPLATE, tools=tools)


_PERSONAS: dict[str, Persona] = {
    persona.identifier: persona
    for persona in (
        Persona(
            identifier="general",
            description="Full assistant with all tools",
        ),
        Persona(
            identifier="explorer",
            description="Explore and understand code (read-only)",
            allowed_actions=frozenset({"Read", "Glob", "Grep"}),
            prompt_template="explorer.md",
            temperature_override=0.3,
        ),
        Persona(
            identifier="coder",
            description="Write and modify code",
            allowed_actions=frozenset({"Read", "Write", "Edit", "Glob"}),
            prompt_template="coder.md",
            temperature_override=0.2,
        ),
        Persona(
            identifier="runner",
            description="Execute commands and run tests",
            allowed_actions=frozenset({"Bash", "Read"}),
            prompt_template="runner.md",
            temperature_override=0.2,
        ),
        Persona(
            identifier="planner",
            description="Plan tasks without executing",
            allowed_actions=frozenset({"Read", "Glob", "Grep"}),
            prompt_template="planner.md",
            temperature_override=0.4,
        ),
        Persona(
            identifier="searcher",
            description="Search the web and gather information",
            allowed_actions=frozenset({"WebSearch", "WebFetch", "Read"}),
            prompt_template="searcher.md",
            temperature_override=0.3,
        ),
    )
}

_ALIASES = {
    "explore": "explorer",
    "code": "coder",
    "run": "runner",
    "plan": "planner",
    "search": "searcher",
    "web": "searcher",
}


class PersonaRegistry:
    """Lookup table of the built-in personas."""

    def __init__(self, personas: dict[str, Persona] | None = None):
        self._personas = dict(personas or _PERSONAS)

    def resolve_name(self, name: str | None) -> str:
        """Map a user-typed name or alias to a persona identifier.

        Unknown names resolve to the default persona.
        """
        key = str(name or "").strip().lower()
        key = _ALIASES.get(key, key)
        return key if key in self._personas else DEFAULT_PERSONA

    def is_known(self, name: str | None) -> bool:
        key = str(name or "").strip().lower()
        return key in self._personas or key in _ALIASES

    def lookup(self, name: str | None) -> Persona:
        return self._personas[self.resolve_name(name)]

    def list_personas(self) -> list[Persona]:
        return list(self._personas.values())


_registry: PersonaRegistry | None = None


def get_persona_registry() -> PersonaRegistry:
    global _registry
    if _registry is None:
        _registry = PersonaRegistry()
    return _registry
