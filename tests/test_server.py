import io
import json
from dataclasses import replace

from conftest import FakeExecutor

from rails_mcp.adapters import build_registry
from rails_mcp.server import INTERNAL_ERROR_CODE, handle_request, serve
from rails_mcp.ssh import RemoteCommandResult


def _run(registry, *messages):
    lines = [m if isinstance(m, str) else json.dumps(m) for m in messages]
    stdin = io.StringIO("\n".join(lines) + "\n")
    stdout = io.StringIO()
    serve(registry, stdin, stdout)
    return [json.loads(line) for line in stdout.getvalue().splitlines()]


def test_initialize_returns_static_identity(config, executor) -> None:
    response = handle_request(
        {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {"protocolVersion": "1999-01-01"}},
        build_registry(config, executor),
    )
    assert response["id"] == 1
    assert response["result"]["protocolVersion"] == "2024-11-05"
    assert response["result"]["serverInfo"] == {"name": "rails-mcp-remote", "version": "0.1.0"}
    assert response["result"]["capabilities"] == {"tools": {}}


def test_tools_list_end_to_end(config, executor) -> None:
    (response,) = _run(build_registry(config, executor), {"jsonrpc": "2.0", "id": 1, "method": "tools/list"})
    names = [tool["name"] for tool in response["result"]["tools"]]
    assert names == ["user_last", "rails_exec"]

    (response,) = _run(
        build_registry(replace(config, adapters="codex"), executor),
        {"jsonrpc": "2.0", "id": 1, "method": "tools/list"},
    )
    names = [tool["name"] for tool in response["result"]["tools"]]
    assert "journalctl_tail" in names


def test_tools_call_success(config) -> None:
    executor = FakeExecutor([RemoteCommandResult(stdout="7\n", stderr="", exit_status=0)])
    (response,) = _run(
        build_registry(config, executor),
        {"jsonrpc": "2.0", "id": "abc", "method": "tools/call",
         "params": {"name": "rails_exec", "arguments": {"code": "User.count"}}},
    )
    assert response == {"jsonrpc": "2.0", "id": "abc", "result": {"content": [{"type": "text", "text": "7"}]}}


def test_tools_call_defaults_arguments(config, executor) -> None:
    response = handle_request(
        {"jsonrpc": "2.0", "id": 2, "method": "tools/call", "params": {"name": "user_last"}},
        build_registry(config, executor),
    )
    assert "result" in response and "error" not in response


def test_remote_failure_becomes_error_response(config) -> None:
    executor = FakeExecutor([RemoteCommandResult(stdout="", stderr="undefined method `foo'", exit_status=1)])
    (response,) = _run(
        build_registry(config, executor),
        {"jsonrpc": "2.0", "id": 5, "method": "tools/call",
         "params": {"name": "rails_exec", "arguments": {"code": "foo"}}},
    )
    assert "result" not in response
    assert response["id"] == 5
    assert response["error"]["code"] == INTERNAL_ERROR_CODE
    assert "undefined method `foo'" in response["error"]["message"]
    assert isinstance(response["error"]["data"], list)
    assert 0 < len(response["error"]["data"]) <= 6
    assert all(isinstance(frame, str) for frame in response["error"]["data"])


def test_unknown_tool_error(config, executor) -> None:
    response = handle_request(
        {"jsonrpc": "2.0", "id": 9, "method": "tools/call", "params": {"name": "drop_db"}},
        build_registry(config, executor),
    )
    assert response["error"]["message"] == "Unknown tool: drop_db"


def test_non_object_arguments_error(config, executor) -> None:
    response = handle_request(
        {"jsonrpc": "2.0", "id": 3, "method": "tools/call", "params": {"name": "rails_exec", "arguments": [1]}},
        build_registry(config, executor),
    )
    assert response["error"]["code"] == INTERNAL_ERROR_CODE
    assert executor.commands == []


def test_unknown_method_acknowledged_only_with_id(config, executor) -> None:
    registry = build_registry(config, executor)
    assert handle_request({"jsonrpc": "2.0", "id": 4, "method": "ping"}, registry) == {
        "jsonrpc": "2.0", "id": 4, "result": {}
    }
    assert handle_request({"jsonrpc": "2.0", "method": "notifications/initialized"}, registry) is None
    assert handle_request({"jsonrpc": "2.0", "id": None, "method": "ping"}, registry) is None


def test_malformed_lines_are_skipped_and_loop_continues(config, executor) -> None:
    responses = _run(
        build_registry(config, executor),
        "{not json",
        "[1, 2, 3]",
        "",
        "42",
        {"jsonrpc": "2.0", "method": "notifications/initialized"},
        {"jsonrpc": "2.0", "id": 1, "method": "ping"},
    )
    assert responses == [{"jsonrpc": "2.0", "id": 1, "result": {}}]


def test_failed_request_does_not_affect_next_one(config) -> None:
    executor = FakeExecutor([
        RemoteCommandResult(stdout="", stderr="boom", exit_status=1),
        RemoteCommandResult(stdout="null\n", stderr="", exit_status=0),
    ])
    responses = _run(
        build_registry(config, executor),
        {"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"name": "rails_exec", "arguments": {"code": "x"}}},
        {"jsonrpc": "2.0", "id": 2, "method": "tools/call", "params": {"name": "user_last", "arguments": {}}},
    )
    assert [r["id"] for r in responses] == [1, 2]
    assert "error" in responses[0]
    assert responses[1]["result"]["content"] == [{"type": "text", "text": "null"}]


def test_response_ids_preserved_in_order(config, executor) -> None:
    ids = [0, "x", 3.5, {"k": 1}]
    responses = _run(
        build_registry(config, executor),
        *[{"jsonrpc": "2.0", "id": i, "method": "tools/list"} for i in ids],
    )
    assert [r["id"] for r in responses] == ids


def test_empty_input_produces_no_output(config, executor) -> None:
    stdout = io.StringIO()
    serve(build_registry(config, executor), io.StringIO(""), stdout)
    assert stdout.getvalue() == ""
