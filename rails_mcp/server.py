import json
import traceback
from typing import Any, Dict, Iterable, List, Optional, TextIO

from rails_mcp.adapters import ToolRegistry
from rails_mcp.config import PROTOCOL_VERSION, SERVER_NAME, SERVER_VERSION
from rails_mcp.errors import InvalidParamsError, ParseError
from rails_mcp.utils import log

INTERNAL_ERROR_CODE = -32000
TRACE_FRAMES = 6

SERVER_INFO = {"name": SERVER_NAME, "version": SERVER_VERSION}


def make_response(req_id: Any, result: Dict[str, Any]) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": req_id, "result": result}


def trace_excerpt(exc: BaseException, limit: int = TRACE_FRAMES) -> List[str]:
    frames = traceback.extract_tb(exc.__traceback__)
    return [f"{frame.filename}:{frame.lineno}:in {frame.name}" for frame in reversed(frames)][:limit]


def error_response(req_id: Any, exc: BaseException) -> Dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": req_id,
        "error": {
            "code": INTERNAL_ERROR_CODE,
            "message": str(exc),
            "data": trace_excerpt(exc),
        },
    }


def parse_line(line: str) -> Dict[str, Any]:
    try:
        message = json.loads(line)
    except json.JSONDecodeError as exc:
        raise ParseError(f"JSON parse error: {exc}") from exc
    if not isinstance(message, dict):
        raise ParseError(f"expected a JSON object, got {type(message).__name__}")
    return message


def _tool_call(params: Any, registry: ToolRegistry) -> Dict[str, Any]:
    if not isinstance(params, dict):
        params = {}
    name = params.get("name")
    arguments = params.get("arguments") or {}
    if not isinstance(arguments, dict):
        raise InvalidParamsError("tools/call arguments must be an object")
    log(f"Dispatching tools/call to {name}")
    return {"content": registry.dispatch(name, arguments)}


def handle_request(request: Dict[str, Any], registry: ToolRegistry) -> Optional[Dict[str, Any]]:
    """Produce the response for one message, or None for notifications.

    Errors raised while dispatching never escape: they become a JSON-RPC error
    response carrying the request id.
    """
    method = request.get("method")
    req_id = request.get("id")
    log(f"Received message: method={method!r} id={req_id!r}")

    try:
        if method == "initialize":
            # The client's requested version is not negotiated.
            return make_response(req_id, {
                "protocolVersion": PROTOCOL_VERSION,
                "serverInfo": SERVER_INFO,
                "capabilities": {"tools": {}},
            })

        if method == "tools/list":
            return make_response(req_id, {"tools": registry.tools()})

        if method == "tools/call":
            return make_response(req_id, _tool_call(request.get("params"), registry))

        if req_id is None:
            return None
        return make_response(req_id, {})
    except Exception as exc:
        log(f"Error processing {method!r}: {type(exc).__name__}: {exc}")
        return error_response(req_id, exc)


def write_message(stream: TextIO, message: Dict[str, Any]) -> None:
    stream.write(json.dumps(message, ensure_ascii=False) + "\n")
    stream.flush()


def serve(registry: ToolRegistry, stdin: Iterable[str], stdout: TextIO) -> None:
    """Read requests line by line until EOF, answering each in order."""
    log("Server boot complete; entering MCP loop and waiting for requests")
    for line in stdin:
        line = line.strip()
        if not line:
            continue
        try:
            request = parse_line(line)
        except ParseError as exc:
            log(f"{exc}; skipping line")
            continue
        response = handle_request(request, registry)
        if response is not None:
            write_message(stdout, response)
    log("EOF reached on stdin, shutting down MCP loop")
