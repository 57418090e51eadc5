from typing import Any, Dict, List, Optional, Sequence, Tuple

from rails_mcp.commands import build_journalctl_parts, build_rails_runner_command, join_shell_tokens
from rails_mcp.config import ServerConfig
from rails_mcp.errors import RemoteExecutionError, TransportError, UnknownToolError
from rails_mcp.ssh import RemoteCommandResult, RemoteExecutor
from rails_mcp.utils import log, truncate_for_log

ContentItems = List[Dict[str, str]]

JOURNALCTL_EMPTY_TEXT = "[journalctl] No output"

# Single line on purpose: the runner command collapses newlines to spaces.
USER_LAST_CODE = (
    "u = User.last; "
    "if u; "
    'require "json"; '
    "h = { id: u.id, type: u.class.name }; "
    "h[:email] = u.respond_to?(:email) ? u.email : nil; "
    "h[:created_at] = u.respond_to?(:created_at) ? u.created_at : nil; "
    "puts h.to_json; "
    "else; "
    'puts "null"; '
    "end"
)


def text_content(text: str) -> ContentItems:
    return [{"type": "text", "text": text}]


def require_success(result: RemoteCommandResult, label: str = "Exit") -> RemoteCommandResult:
    if result.exit_status is None:
        raise TransportError("Remote command finished without reporting an exit status")
    if not result.ok:
        raise RemoteExecutionError(
            f"{label} {result.exit_status}: {result.stderr}",
            exit_status=result.exit_status,
            stderr=result.stderr,
        )
    return result


class ToolAdapter:
    """A bundle of tools.

    ``dispatch`` returns ``None`` for tool names the adapter does not own so
    the registry can move on to the next adapter.
    """

    name = "base"

    def descriptors(self) -> List[Dict[str, Any]]:
        return []

    def dispatch(self, name: str, arguments: Dict[str, Any]) -> Optional[ContentItems]:
        return None


class CoreAdapter(ToolAdapter):
    name = "core"

    def __init__(self, config: ServerConfig, executor: RemoteExecutor):
        self.config = config
        self.executor = executor

    def descriptors(self) -> List[Dict[str, Any]]:
        return [
            {
                "name": "user_last",
                "description": (
                    "Return User.last as one JSON line (id, type, email, created_at) "
                    "via the Rails runner on the remote host, or null if there are no users."
                ),
                "inputSchema": {"type": "object", "properties": {}, "additionalProperties": False},
            },
            {
                "name": "rails_exec",
                "description": (
                    "Run one line of Ruby in the Rails context via `bin/rails r` on the remote host. "
                    "DANGEROUS: executes arbitrary code."
                ),
                "inputSchema": {
                    "type": "object",
                    "properties": {"code": {"type": "string", "description": "Ruby code to run."}},
                    "required": ["code"],
                    "additionalProperties": False,
                },
            },
        ]

    def dispatch(self, name: str, arguments: Dict[str, Any]) -> Optional[ContentItems]:
        if name == "user_last":
            log("Core adapter executing user_last via SSH")
            return self._run_code(name, USER_LAST_CODE)
        if name == "rails_exec":
            code = arguments.get("code") or ""
            log(f"Core adapter executing rails_exec: code={truncate_for_log(code, 120)}")
            return self._run_code(name, code)
        return None

    def build_command(self, code: Any) -> str:
        cfg = self.config
        command = build_rails_runner_command(
            code,
            app_dir=cfg.app_dir,
            rails_bin=cfg.rails_bin,
            rails_env=cfg.rails_env,
            login_shell=cfg.use_login_shell,
        )
        log(f"Built rails runner command{' (login shell)' if cfg.use_login_shell else ''}: {command}")
        return command

    def _run_code(self, tool: str, code: Any) -> ContentItems:
        result = self.executor.execute(self.build_command(code))
        log(f"Core adapter {tool} exit={result.exit_status}")
        require_success(result)
        return text_content(result.stdout.strip())


class JournalctlAdapter(ToolAdapter):
    """Optional systemd journal reader."""

    name = "journalctl"

    def __init__(self, config: ServerConfig, executor: RemoteExecutor):
        self.config = config
        self.executor = executor

    def descriptors(self) -> List[Dict[str, Any]]:
        return [
            {
                "name": "journalctl_tail",
                "description": (
                    "Read systemd journal entries with journalctl on the remote host. "
                    f"At most {self.config.journalctl_max_lines} lines are returned."
                ),
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "unit": {"type": "string", "description": "systemd unit (-u)."},
                        "lines": {"type": "integer", "minimum": 1, "description": "Number of lines (-n)."},
                        "since": {"type": "string", "description": "Start time, e.g. '1 hour ago' (--since)."},
                        "priority": {"type": "string", "description": "Priority filter, e.g. 'err' (-p)."},
                        "grep": {"type": "string", "description": "Message pattern (--grep)."},
                        "reverse": {"type": "boolean", "description": "Newest entries first (-r)."},
                    },
                    "additionalProperties": False,
                },
            }
        ]

    def build_command(self, arguments: Optional[Dict[str, Any]]) -> str:
        return join_shell_tokens(build_journalctl_parts(arguments, self.config.journalctl_max_lines))

    def dispatch(self, name: str, arguments: Dict[str, Any]) -> Optional[ContentItems]:
        if name != "journalctl_tail":
            return None
        log(f"Journalctl adapter journalctl_tail params={arguments!r}")
        result = self.executor.execute(self.build_command(arguments))
        require_success(result, label="journalctl failed")
        text = result.stdout.strip()
        return text_content(text or JOURNALCTL_EMPTY_TEXT)


OPTIONAL_ADAPTERS = {
    "codex": JournalctlAdapter,
    "journalctl": JournalctlAdapter,
}


class ToolRegistry:
    """Ordered adapters; the first one that handles a tool name wins."""

    def __init__(self, adapters: Sequence[ToolAdapter]):
        self.adapters: Tuple[ToolAdapter, ...] = tuple(adapters)

    def tools(self) -> List[Dict[str, Any]]:
        tools: List[Dict[str, Any]] = []
        for adapter in self.adapters:
            tools.extend(adapter.descriptors())
        return tools

    def dispatch(self, name: Optional[str], arguments: Dict[str, Any]) -> ContentItems:
        log(f"Handling tool call: {name} with args={truncate_for_log(repr(arguments))}")
        for adapter in self.adapters:
            result = adapter.dispatch(name, arguments)
            if result is not None:
                return result
        raise UnknownToolError(name)


def parse_adapter_names(value: Optional[str]) -> List[str]:
    if not value:
        return []
    names = [part.strip().lower() for part in value.split(",")]
    return [name for name in names if name]


def build_registry(config: ServerConfig, executor: Optional[RemoteExecutor] = None) -> ToolRegistry:
    executor = executor or RemoteExecutor(config)
    adapters: List[ToolAdapter] = [CoreAdapter(config, executor)]
    names = parse_adapter_names(config.adapters)
    log(f"Requested adapters: {names if names else '(none)'}")
    for name in names:
        adapter_cls = OPTIONAL_ADAPTERS.get(name)
        if adapter_cls is None:
            log(f"Unknown adapter {name}, ignoring")
            continue
        if any(isinstance(active, adapter_cls) for active in adapters):
            log(f"Adapter {name} already active, skipping")
            continue
        adapters.append(adapter_cls(config, executor))
    log(f"Active adapters: {', '.join(type(a).__name__ for a in adapters)}")
    return ToolRegistry(adapters)
