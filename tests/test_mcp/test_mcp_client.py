import sys
import textwrap

import pytest

from ollamacode.actions import ActionRequest
from ollamacode.config import MCPConfig, MCPServerConfig
from ollamacode.confirmation import ConfirmationGate
from ollamacode.exceptions import RemoteProviderError
from ollamacode.mcp import (
    MCPClient,
    MCPServerConnection,
    extract_text_content,
    parse_argument_values,
)
from ollamacode.tools.registry import ToolRegistry

_FAKE_SERVER = textwrap.dedent(
    """
    import json
    import sys

    while True:
        line = sys.stdin.readline()
        if not line:
            break
        msg = json.loads(line)
        if "id" not in msg:
            continue
        method = msg["method"]
        if method == "initialize":
            print(json.dumps({"jsonrpc": "2.0", "method": "notifications/message"}), flush=True)
            result = {"protocolVersion": "2024-11-05", "capabilities": {}}
        elif method == "tools/list":
            result = {"tools": [{"name": "add", "description": "Add two numbers"}]}
        elif method == "tools/call":
            params = msg["params"]
            if params["name"] == "fail":
                result = {"content": [{"type": "text", "text": "denied"}], "isError": True}
            else:
                args = params["arguments"]
                total = args["a"] + args["b"]
                result = {"content": [
                    {"type": "text", "text": "sum="},
                    {"type": "image", "data": "ignored"},
                    {"type": "text", "text": str(total)},
                ]}
        else:
            print(json.dumps({"jsonrpc": "2.0", "id": msg["id"], "error": {"message": "no such method"}}), flush=True)
            continue
        print(json.dumps({"jsonrpc": "2.0", "id": msg["id"], "result": result}), flush=True)
    """
)


def _client(tmp_path) -> MCPClient:
    script = tmp_path / "fake_server.py"
    script.write_text(_FAKE_SERVER, encoding="utf-8")
    return MCPClient(
        MCPConfig(
            enabled=True,
            timeout=10,
            servers={"calc": MCPServerConfig(command=sys.executable, args=[str(script)])},
        )
    )


def test_parse_argument_values_decodes_json_and_keeps_plain_strings():
    parsed = parse_argument_values({"count": "3", "flags": '["a", "b"]', "path": "/tmp/x", "on": "true"})

    assert parsed == {"count": 3, "flags": ["a", "b"], "path": "/tmp/x", "on": True}


def test_extract_text_content_concatenates_text_items_only():
    result = {
        "content": [
            {"type": "text", "text": "a"},
            {"type": "resource", "text": "skip"},
            {"type": "text", "text": "b"},
        ]
    }

    assert extract_text_content(result) == "ab"
    assert extract_text_content({}) == ""


@pytest.mark.asyncio
async def test_invoke_remote_unknown_provider_raises():
    client = MCPClient(MCPConfig(enabled=True))

    with pytest.raises(RemoteProviderError) as exc_info:
        await client.invoke_remote("ghost", "anything", {})

    assert "not configured" in str(exc_info.value)


@pytest.mark.asyncio
async def test_invoke_remote_round_trip_with_stdio_server(tmp_path):
    client = _client(tmp_path)
    try:
        result = await client.invoke_remote("calc", "add", {"a": "2", "b": "3"})
        failed = await client.invoke_remote("calc", "fail", {})
    finally:
        await client.close_all()

    assert result.succeeded is True
    assert result.content == "sum=5"
    assert failed.succeeded is False
    assert failed.error == "denied"


@pytest.mark.asyncio
async def test_describe_remote_tools_uses_composite_names(tmp_path):
    client = _client(tmp_path)
    try:
        text = await client.describe_remote_tools()
    finally:
        await client.close_all()

    assert text == "**calc__add** - Add two numbers"


@pytest.mark.asyncio
async def test_unstartable_server_is_skipped_when_listing(tmp_path):
    client = MCPClient(
        MCPConfig(
            enabled=True,
            servers={"broken": MCPServerConfig(command=str(tmp_path / "does-not-exist"))},
        )
    )
    try:
        tools = await client.list_remote_tools()
    finally:
        await client.close_all()

    assert tools == []


_REFUSING_SERVER = textwrap.dedent(
    """
    import json
    import sys

    while True:
        line = sys.stdin.readline()
        if not line:
            break
        msg = json.loads(line)
        if "id" not in msg:
            continue
        if msg["method"] == "initialize":
            reply = {"jsonrpc": "2.0", "id": msg["id"], "error": {"message": "init refused"}}
        else:
            reply = {"jsonrpc": "2.0", "id": msg["id"], "result": {
                "content": [{"type": "text", "text": "ran " + msg["method"]}],
            }}
        print(json.dumps(reply), flush=True)
    """
)


@pytest.mark.asyncio
async def test_failed_handshake_never_reaches_tools_call(tmp_path):
    script = tmp_path / "refusing_server.py"
    script.write_text(_REFUSING_SERVER, encoding="utf-8")
    client = MCPClient(
        MCPConfig(
            enabled=True,
            timeout=10,
            servers={"x": MCPServerConfig(command=sys.executable, args=[str(script)])},
        )
    )
    registry = ToolRegistry(gate=ConfirmationGate(auto_approve=True), remote=client)
    try:
        first = await registry.dispatch(ActionRequest(name="x__echo"))
        second = await registry.dispatch(ActionRequest(name="x__echo"))
    finally:
        await client.close_all()

    for outcome in (first, second):
        assert outcome.succeeded is False
        assert "init refused" in outcome.error
        assert "ran tools/call" not in outcome.output


@pytest.mark.asyncio
async def test_failed_handshake_shuts_the_server_down(tmp_path):
    script = tmp_path / "refusing_server.py"
    script.write_text(_REFUSING_SERVER, encoding="utf-8")
    connection = MCPServerConnection(
        "x",
        MCPServerConfig(command=sys.executable, args=[str(script)]),
        timeout=10,
    )

    with pytest.raises(RemoteProviderError):
        await connection.start()

    assert connection.process is None
    assert connection.is_running is False


@pytest.mark.asyncio
async def test_reading_from_a_stopped_server_raises_remote_error():
    connection = MCPServerConnection("x", MCPServerConfig(command="unused"), timeout=1)

    with pytest.raises(RemoteProviderError, match="server is not running"):
        await connection._read_response(1)
