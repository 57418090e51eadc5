"""Shell command construction for remote tool calls.

Two quoting schemes live here on purpose:

* Free-form runner code (``rails_exec``, ``user_last``) is wrapped in single
  quotes with embedded ``'`` backslash-escaped. Only ``'`` is treated as
  dangerous, so the code may still carry metacharacters meant for the remote
  interpreter. This is NOT a general shell-injection-safe quoting; whoever can
  call ``rails_exec`` can already run arbitrary code on the remote host.
* Structured tool parameters (``journalctl_tail``) are quoted token by token
  with :func:`shlex.quote` and must never reach the shell unquoted.

Operator settings (``APP_DIR``, ``RAILS_BIN``) are inserted as written so that
multi-word runners (``bundle exec rails``) and ``~`` paths keep working.

Every function here is pure and total over its inputs.
"""

import re
import shlex
from typing import Any, Dict, Iterable, List, Optional

from rails_mcp.utils import clamp_int, is_truthy, safe_string

NEWLINES = re.compile(r"\r\n|\r|\n")


def collapse_newlines(code: Any) -> str:
    """Remote execution is single-line: newlines become spaces."""
    if code is None:
        return ""
    return NEWLINES.sub(" ", str(code)).strip()


def quote_single(code: Any) -> str:
    escaped = collapse_newlines(code).replace("'", "\\'")
    return f"'{escaped}'"


def wrap_login_shell(command: str) -> str:
    escaped = command.replace('"', '\\"')
    return f'bash -lc "{escaped}"'


def build_rails_runner_command(
    code: Any,
    app_dir: str,
    rails_bin: str,
    rails_env: Optional[str] = None,
    login_shell: bool = False,
) -> str:
    runner = f"{rails_bin} r {quote_single(code)}"
    if rails_env:
        runner = f"RAILS_ENV={shlex.quote(rails_env)} {runner}"
    command = f"cd {app_dir} && {runner}"
    if login_shell:
        return wrap_login_shell(command)
    return command


def build_journalctl_parts(params: Optional[Dict[str, Any]], max_lines: int) -> List[str]:
    """Turn ``journalctl_tail`` arguments into argv tokens (not yet quoted)."""
    params = params or {}
    lines = clamp_int(params.get("lines"), max_lines, 1, max_lines)
    parts = ["journalctl", "--no-pager", "-n", str(lines)]

    for key, flag in (("unit", "-u"), ("since", "--since"), ("priority", "-p"), ("grep", "--grep")):
        value = safe_string(params.get(key))
        if value:
            parts += [flag, value]

    if is_truthy(params.get("reverse")):
        parts.append("-r")
    return parts


def join_shell_tokens(parts: Iterable[str]) -> str:
    return " ".join(shlex.quote(str(part)) for part in parts)
