"""Interactive console client: starts the server as a subprocess and talks to it.

Commands at the ``mcp>`` prompt::

    list                        fetch tools/list
    call TOOL_NAME [JSON_ARGS]  call a tool, JSON arguments on one line
    raw JSON                    send a raw JSON-RPC payload (jsonrpc/id filled in)
    help                        show help
    quit                        stop client and server
"""

import argparse
import json
import queue
import shlex
import subprocess
import sys
import threading
from typing import Any, Dict, List, Optional, Sequence

from rails_mcp.config import PROTOCOL_VERSION
from rails_mcp.utils import log

DEFAULT_CLIENT_NAME = "rails-mcp-client"
DEFAULT_CLIENT_VERSION = "0.1.0"
DEFAULT_TIMEOUT = 10.0

HELP_TEXT = """Commands:
  list                           - fetch tools/list from the server
  call TOOL_NAME [JSON_ARGS]     - call tools/call, optional JSON arguments (one line)
  raw JSON                       - send raw JSON-RPC payload (jsonrpc/id inserted if missing)
  help                           - show this help
  quit                           - terminate client and server"""

_EOF = object()


class ClientError(Exception):
    pass


class McpClient:
    def __init__(
        self,
        command: Sequence[str],
        init_protocol: str = PROTOCOL_VERSION,
        client_name: str = DEFAULT_CLIENT_NAME,
        client_version: str = DEFAULT_CLIENT_VERSION,
        timeout: float = DEFAULT_TIMEOUT,
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None,
    ):
        self.command = list(command)
        self.init_protocol = init_protocol
        self.client_name = client_name
        self.client_version = client_version
        self.timeout = timeout
        self.env = env
        self.cwd = cwd
        self.proc: Optional[subprocess.Popen] = None
        self.responses: "queue.Queue[Any]" = queue.Queue()
        self.server_info: Dict[str, Any] = {}
        self._id_sequence = 0
        self._threads: List[threading.Thread] = []

    # ----- process plumbing -----

    def start(self) -> None:
        self.proc = subprocess.Popen(
            self.command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
            env=self.env,
            cwd=self.cwd,
        )
        self._threads = [
            threading.Thread(target=self._pump_stderr, daemon=True),
            threading.Thread(target=self._pump_stdout, daemon=True),
        ]
        for thread in self._threads:
            thread.start()

    def _pump_stderr(self) -> None:
        for line in self.proc.stderr:
            line = line.rstrip("\n")
            if line:
                print(f"[server stderr] {line}", file=sys.stderr, flush=True)

    def _pump_stdout(self) -> None:
        try:
            for line in self.proc.stdout:
                line = line.strip()
                if not line:
                    continue
                try:
                    self.responses.put(json.loads(line))
                except json.JSONDecodeError as exc:
                    log(f"[client] Failed to parse server JSON: {exc}: {line}")
        finally:
            self.responses.put(_EOF)

    def next_id(self) -> str:
        self._id_sequence += 1
        return f"req-{self._id_sequence}"

    def send(self, payload: Dict[str, Any]) -> None:
        if self.proc is None or self.proc.stdin is None:
            raise ClientError("Server is not running")
        try:
            self.proc.stdin.write(json.dumps(payload) + "\n")
            self.proc.stdin.flush()
        except (BrokenPipeError, ValueError) as exc:
            raise ClientError("Server closed the connection") from exc

    def send_request(self, method: str, params: Optional[Dict[str, Any]] = None) -> str:
        request_id = self.next_id()
        payload: Dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            payload["params"] = params
        self.send(payload)
        return request_id

    def await_response(self, request_id: Any) -> Dict[str, Any]:
        while True:
            try:
                message = self.responses.get(timeout=self.timeout)
            except queue.Empty:
                raise ClientError(f"Timed out waiting for response to {request_id}")
            if message is _EOF:
                raise ClientError("Server closed the connection")
            if isinstance(message, dict) and message.get("id") == request_id:
                return message
            log(f"[client] Ignoring unsolicited message: {message!r}")

    def request(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.await_response(self.send_request(method, params))

    # ----- protocol operations -----

    def handshake(self) -> Dict[str, Any]:
        response = self.request("initialize", {
            "protocolVersion": self.init_protocol,
            "clientInfo": {"name": self.client_name, "version": self.client_version},
        })
        if response.get("error"):
            raise ClientError(f"Handshake failed: {response['error']!r}")
        self.server_info = (response.get("result") or {}).get("serverInfo") or {}
        return self.server_info

    def list_tools(self) -> List[Dict[str, Any]]:
        response = self.request("tools/list")
        if response.get("error"):
            raise ClientError(f"tools/list error: {response['error']!r}")
        return (response.get("result") or {}).get("tools") or []

    def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.request("tools/call", {"name": name, "arguments": arguments or {}})

    def raw(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if payload.get("id") is None:
            payload["id"] = self.next_id()
        payload.setdefault("jsonrpc", "2.0")
        self.send(payload)
        return self.await_response(payload["id"])

    def shutdown(self) -> None:
        if self.proc is None:
            return
        try:
            if self.proc.stdin:
                self.proc.stdin.close()
        except OSError:
            pass
        for thread in self._threads:
            thread.join(0.2)
        if self.proc.poll() is None:
            self.proc.terminate()
            try:
                self.proc.wait(1)
            except subprocess.TimeoutExpired:
                self.proc.kill()
                self.proc.wait()

    # ----- interactive console -----

    def handle_list(self) -> None:
        tools = self.list_tools()
        if not tools:
            print("No tools exposed by the server.")
            return
        print("Available tools:")
        for tool in tools:
            print(f"- {tool.get('name')}: {tool.get('description')}")

    def handle_call(self, rest: str) -> None:
        parts = rest.split(None, 1)
        if not parts:
            print("Usage: call TOOL_NAME [JSON_ARGS]")
            return
        arguments: Dict[str, Any] = {}
        if len(parts) > 1 and parts[1].strip():
            try:
                arguments = json.loads(parts[1])
            except json.JSONDecodeError as exc:
                print(f"Failed to parse JSON arguments: {exc}")
                return
        response = self.call_tool(parts[0], arguments)
        error = response.get("error")
        if error:
            print(f"tools/call error: {error.get('message')}")
            for line in error.get("data") or []:
                print(f"  {line}")
            return
        content = (response.get("result") or {}).get("content") or []
        if not content:
            print("Tool returned no content.")
            return
        print("Tool response:")
        for item in content:
            if item.get("type") == "text":
                print(item.get("text"))
            else:
                print(f"{item.get('type')}: {item!r}")

    def handle_raw(self, rest: str) -> None:
        try:
            payload = json.loads(rest)
        except json.JSONDecodeError as exc:
            print(f"Failed to parse JSON: {exc}")
            return
        if not isinstance(payload, dict):
            print("Raw payload must be a JSON object")
            return
        print(json.dumps(self.raw(payload), indent=2, ensure_ascii=False))

    def run_interactive(self, stdin=None) -> None:
        stdin = stdin or sys.stdin
        self.start()
        try:
            info = self.handshake()
            print(f"Connected to server {info.get('name')} {info.get('version')}")
            print("Handshake complete. Type `help` for commands.")
            while True:
                print("mcp> ", end="", flush=True)
                line = stdin.readline()
                if not line:
                    break
                line = line.strip()
                if not line:
                    continue
                command, _, rest = line.partition(" ")
                rest = rest.strip()
                if command in ("help", "h", "?"):
                    print(HELP_TEXT)
                elif command in ("exit", "quit"):
                    break
                elif command == "list":
                    self.handle_list()
                elif command == "call" and rest:
                    self.handle_call(rest)
                elif command == "raw" and rest:
                    self.handle_raw(rest)
                else:
                    print(f"Unknown command: {line!r}. Type `help`.")
        finally:
            self.shutdown()


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Interactive console for the rails-mcp-remote server")
    parser.add_argument(
        "--command",
        default=f"{shlex.quote(sys.executable)} -m rails_mcp.main",
        help="Command that starts the MCP server (default: this interpreter running rails_mcp.main)",
    )
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="Seconds to wait for each response")
    parser.add_argument("--protocol", default=PROTOCOL_VERSION, help="MCP protocol version sent in initialize")
    parser.add_argument("--client-name", default=DEFAULT_CLIENT_NAME, help="Client name reported during initialize")
    parser.add_argument("--client-version", default=DEFAULT_CLIENT_VERSION, help="Client version reported during initialize")
    args = parser.parse_args(argv)

    client = McpClient(
        command=shlex.split(args.command),
        init_protocol=args.protocol,
        client_name=args.client_name,
        client_version=args.client_version,
        timeout=args.timeout,
    )
    try:
        client.run_interactive()
    except ClientError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
