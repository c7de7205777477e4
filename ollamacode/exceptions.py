"""Custom exceptions for ollamacode."""


class OllamaCodeError(Exception):
    """Base exception for ollamacode."""

    pass


class ConfigurationError(OllamaCodeError):
    """Configuration-related errors."""

    pass


class LLMError(OllamaCodeError):
    """LLM-related errors."""

    pass


class LLMAPIError(LLMError):
    """LLM API errors (bad status, unreachable host, etc.)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ToolError(OllamaCodeError):
    """Tool execution errors."""

    pass


class ToolExecutionError(ToolError):
    """Tool execution failed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool: {tool_name}")
        self.tool_name = tool_name


class ToolBlockedError(ToolError):
    """Tool execution blocked by policy."""

    def __init__(self, tool_name: str, reason: str):
        super().__init__(f"Tool '{tool_name}' blocked: {reason}")
        self.tool_name = tool_name
        self.reason = reason


class RemoteProviderError(ToolError):
    """Remote (MCP) provider could not serve a call."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"Remote provider '{provider}': {message}")
        self.provider = provider
