"""Configuration management for ollamacode."""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from ollamacode.exceptions import ConfigurationError


# Paths
DEFAULT_CONFIG_PATH = Path("~/.ollamacode/config.yaml").expanduser()
LOCAL_CONFIG_FILENAME = "config.yaml"

DEFAULT_ALLOWED_COMMANDS = [
    "ls", "cat", "head", "tail", "grep", "find", "git", "docker",
    "kubectl", "systemctl", "journalctl", "pwd", "whoami", "date",
    "echo", "which", "ps", "df", "du", "wc", "sort", "uniq", "tree",
]


class ModelConfig(BaseModel):
    """Model configuration."""

    provider: str = "ollama"
    model: str = "llama3"
    base_url: str = "http://localhost:11434"
    temperature: float = 0.7
    max_tokens: int = 4096
    api_key: str = ""
    timeout: float = 120.0


class AgentConfig(BaseModel):
    """Conversation loop behavior."""

    max_iterations: int = 10
    auto_approve: bool = False
    safe_mode: bool = True
    default_persona: str = "general"
    snippet_chars: int = 500


class BashToolConfig(BaseModel):
    """Bash tool configuration."""

    timeout: int = 30
    blocked: list[str] = [
        "rm -rf /",
        "mkfs",
        ":(){:|:&};:",
    ]
    allowed_commands: list[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_COMMANDS))


class ReadToolConfig(BaseModel):
    """Read tool configuration."""

    max_bytes: int = 100_000


class WebFetchToolConfig(BaseModel):
    """Web fetch tool configuration."""

    max_chars: int = 100000


class WebSearchToolConfig(BaseModel):
    """Web search tool configuration."""

    provider: str = "brave"
    api_key: str = ""
    base_url: str = "https://api.search.brave.com/res/v1/web/search"
    max_results: int = 5
    timeout: int = 20
    safesearch: str = "moderate"


class ToolsConfig(BaseModel):
    """Tools configuration."""

    enabled: list[str] = [
        "Bash",
        "Read",
        "Write",
        "Edit",
        "Glob",
        "Grep",
        "WebFetch",
        "WebSearch",
    ]
    bash: BashToolConfig = Field(default_factory=BashToolConfig)
    read: ReadToolConfig = Field(default_factory=ReadToolConfig)
    web_fetch: WebFetchToolConfig = Field(default_factory=WebFetchToolConfig)
    web_search: WebSearchToolConfig = Field(default_factory=WebSearchToolConfig)


class MCPServerConfig(BaseModel):
    """One MCP server launched over stdio."""

    command: str
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)


class MCPConfig(BaseModel):
    """Remote tool providers."""

    enabled: bool = False
    timeout: float = 30.0
    servers: dict[str, MCPServerConfig] = Field(default_factory=dict)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "WARNING"
    format: str = "console"


class Config(BaseSettings):
    """Main configuration for ollamacode."""

    model: ModelConfig = Field(default_factory=ModelConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    mcp: MCPConfig = Field(default_factory=MCPConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="OLLAMACODE_",
        env_file=".env",
        env_nested_delimiter="__",
    )

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        try:
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config root must be a mapping: {config_path}")

        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid config {config_path}: {e}") from e

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from the default YAML location.

        OLLAMACODE_* variables fill every field the file leaves unset.
        """
        return cls.from_yaml()

    def save(self, path: Path | str | None = None) -> None:
        """Save configuration to YAML file."""
        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(exclude_none=True)

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
