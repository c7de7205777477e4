"""Remote tool providers over the Model Context Protocol (stdio transport).

Each configured server is launched as a subprocess on first use and spoken to
with newline-delimited JSON-RPC 2.0. Actions named ``<server>__<tool>`` are
routed here by the tool registry.
"""

import asyncio
import json
import os
from dataclasses import dataclass
from typing import Any

from ollamacode import __version__
from ollamacode.actions import REMOTE_SEPARATOR
from ollamacode.config import MCPConfig, MCPServerConfig
from ollamacode.exceptions import RemoteProviderError
from ollamacode.logging import get_logger

log = get_logger(__name__)

PROTOCOL_VERSION = "2024-11-05"


@dataclass
class RemoteResult:
    """What a remote provider answered for one call."""

    succeeded: bool
    content: str = ""
    error: str = ""


@dataclass
class RemoteToolInfo:
    provider: str
    name: str
    description: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.provider}{REMOTE_SEPARATOR}{self.name}"


def parse_argument_values(arguments: dict[str, str]) -> dict[str, Any]:
    """Decode argument values that are valid JSON; keep the rest as strings."""
    parsed: dict[str, Any] = {}
    for key, value in arguments.items():
        try:
            parsed[key] = json.loads(value)
        except (TypeError, ValueError):
            parsed[key] = value
    return parsed


def extract_text_content(result: dict[str, Any]) -> str:
    """Concatenate the ``text`` items of a ``tools/call`` result."""
    items = result.get("content")
    if not isinstance(items, list):
        return ""
    return "".join(
        str(item.get("text", ""))
        for item in items
        if isinstance(item, dict) and item.get("type") == "text"
    )


class MCPServerConnection:
    """One stdio MCP server process."""

    def __init__(self, name: str, config: MCPServerConfig, timeout: float = 30.0):
        self.name = name
        self.config = config
        self.timeout = timeout
        self.process: asyncio.subprocess.Process | None = None
        self._request_id = 0
        self._lock = asyncio.Lock()
        self._initialized = False

    @property
    def is_running(self) -> bool:
        return self.process is not None and self.process.returncode is None

    async def start(self) -> None:
        """Launch the server and perform the initialize handshake.

        A server whose handshake fails is shut down; the next call starts a
        fresh process.
        """
        if self.is_running and self._initialized:
            return
        await self.close()
        try:
            self.process = await asyncio.create_subprocess_exec(
                self.config.command,
                *self.config.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
                env={**os.environ, **self.config.env},
            )
        except OSError as e:
            raise RemoteProviderError(self.name, f"failed to start: {e}") from e

        try:
            await self.request("initialize", {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": "ollamacode", "version": __version__},
            })
            await self.notify("notifications/initialized")
        except RemoteProviderError:
            log.warning("MCP handshake failed", server=self.name)
            await self.close()
            raise
        self._initialized = True
        log.info("MCP server started", server=self.name)

    async def _write(self, payload: dict[str, Any]) -> None:
        if not self.is_running or self.process.stdin is None:
            raise RemoteProviderError(self.name, "server is not running")
        try:
            self.process.stdin.write((json.dumps(payload) + "\n").encode("utf-8"))
            await self.process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise RemoteProviderError(self.name, f"write failed: {e}") from e

    async def _read_response(self, request_id: int) -> dict[str, Any]:
        if self.process is None or self.process.stdout is None:
            raise RemoteProviderError(self.name, "server is not running")
        while True:
            line = await self.process.stdout.readline()
            if not line:
                raise RemoteProviderError(self.name, "server closed the connection")
            try:
                message = json.loads(line)
            except ValueError:
                continue
            # server notifications and stray output are skipped
            if isinstance(message, dict) and message.get("id") == request_id:
                return message

    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        payload: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            payload["params"] = params
        await self._write(payload)

    async def request(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        """Send a request and wait for its result.

        Raises:
            RemoteProviderError on timeout, transport failure or a JSON-RPC error
        """
        async with self._lock:
            self._request_id += 1
            request_id = self._request_id
            await self._write({
                "jsonrpc": "2.0",
                "id": request_id,
                "method": method,
                "params": params,
            })
            try:
                response = await asyncio.wait_for(self._read_response(request_id), self.timeout)
            except asyncio.TimeoutError as e:
                raise RemoteProviderError(
                    self.name, f"timeout after {self.timeout}s (method={method})"
                ) from e

        if "error" in response:
            error = response["error"]
            detail = error.get("message") if isinstance(error, dict) else str(error)
            raise RemoteProviderError(self.name, detail or "unknown error")
        result = response.get("result")
        return result if isinstance(result, dict) else {}

    async def list_tools(self) -> list[RemoteToolInfo]:
        result = await self.request("tools/list", {})
        tools = result.get("tools") if isinstance(result.get("tools"), list) else []
        return [
            RemoteToolInfo(
                provider=self.name,
                name=str(tool.get("name", "")),
                description=str(tool.get("description", "") or ""),
            )
            for tool in tools
            if isinstance(tool, dict) and tool.get("name")
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> RemoteResult:
        result = await self.request("tools/call", {"name": name, "arguments": arguments})
        content = extract_text_content(result)
        if result.get("isError"):
            return RemoteResult(succeeded=False, content=content, error=content or "Remote tool reported an error")
        return RemoteResult(succeeded=True, content=content)

    async def close(self) -> None:
        if self.process is None:
            return
        if self.process.returncode is None:
            if self.process.stdin is not None:
                self.process.stdin.close()
            try:
                await asyncio.wait_for(self.process.wait(), timeout=2)
            except asyncio.TimeoutError:
                self.process.kill()
                await self.process.wait()
        self.process = None
        self._initialized = False


class MCPClient:
    """Routes remote calls to the configured MCP servers, starting them lazily."""

    def __init__(self, config: MCPConfig | None = None):
        self.config = config or MCPConfig()
        self._connections: dict[str, MCPServerConnection] = {}

    @property
    def provider_names(self) -> list[str]:
        return list(self.config.servers.keys())

    async def _connection(self, provider: str) -> MCPServerConnection:
        server = self.config.servers.get(provider)
        if server is None:
            raise RemoteProviderError(provider, "not configured")
        connection = self._connections.get(provider)
        if connection is None:
            connection = MCPServerConnection(provider, server, timeout=self.config.timeout)
            self._connections[provider] = connection
        await connection.start()
        return connection

    async def invoke_remote(
        self,
        provider: str,
        action: str,
        arguments: dict[str, str],
    ) -> RemoteResult:
        """Call ``action`` on ``provider`` with JSON-decoded argument values."""
        connection = await self._connection(provider)
        log.info("Calling remote tool", provider=provider, tool=action)
        return await connection.call_tool(action, parse_argument_values(arguments))

    async def list_remote_tools(self) -> list[RemoteToolInfo]:
        """List tools of every configured server; unreachable servers are skipped."""
        tools: list[RemoteToolInfo] = []
        for provider in self.provider_names:
            try:
                connection = await self._connection(provider)
                tools.extend(await connection.list_tools())
            except RemoteProviderError as e:
                log.warning("Skipping MCP server", server=provider, error=str(e))
        return tools

    async def describe_remote_tools(self) -> str:
        """Prompt-ready listing of remote tools."""
        lines = []
        for tool in await self.list_remote_tools():
            line = f"**{tool.full_name}**"
            if tool.description:
                line += f" - {tool.description}"
            lines.append(line)
        return "\n".join(lines)

    async def close_all(self) -> None:
        for connection in self._connections.values():
            await connection.close()
        self._connections.clear()
