import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

from rails_mcp.utils import log

# ========= Static config =========
CONNECT_TIMEOUT = 10
BUFFER_SIZE = 4096

DEFAULT_SSH_PORT = 22
DEFAULT_APP_DIR = "/var/www/miq/vmdb"
DEFAULT_RAILS_BIN = "bin/rails"
DEFAULT_RAILS_ENV = "production"
DEFAULT_JOURNALCTL_MAX_LINES = 500

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "rails-mcp-remote"
SERVER_VERSION = "0.1.0"

TRUE_TOKENS = ("true", "1", "yes")


# ========= Runtime Configuration =========
@dataclass(frozen=True)
class ServerConfig:
    """Everything the server reads from its environment, captured once at startup."""

    ssh_host: Optional[str] = None
    ssh_user: Optional[str] = None
    ssh_port: int = DEFAULT_SSH_PORT
    ssh_key_path: Optional[str] = None
    ssh_key_passphrase: Optional[str] = None
    ssh_password: Optional[str] = None
    # False means any host key is accepted ("trust remote host").
    ssh_verify_host_key: bool = False
    connect_timeout: float = CONNECT_TIMEOUT
    max_capture_bytes: int = 0

    app_dir: str = DEFAULT_APP_DIR
    rails_bin: str = DEFAULT_RAILS_BIN
    rails_env: str = DEFAULT_RAILS_ENV
    use_login_shell: bool = False

    adapters: str = ""
    journalctl_max_lines: int = DEFAULT_JOURNALCTL_MAX_LINES

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        env = os.environ if environ is None else environ

        def _int(name: str, default: int) -> int:
            raw = env.get(name)
            if raw is None or not raw.strip():
                return default
            try:
                return int(raw)
            except ValueError:
                log(f"Invalid {name}={raw!r}, using {default}")
                return default

        max_lines = _int("JOURNALCTL_MAX_LINES", DEFAULT_JOURNALCTL_MAX_LINES)
        if max_lines < 1:
            log(f"JOURNALCTL_MAX_LINES must be >= 1, using {DEFAULT_JOURNALCTL_MAX_LINES}")
            max_lines = DEFAULT_JOURNALCTL_MAX_LINES

        return cls(
            ssh_host=env.get("SSH_HOST") or None,
            ssh_user=env.get("SSH_USER") or None,
            # A bad port is fatal: no call could ever succeed.
            ssh_port=int(env.get("SSH_PORT") or DEFAULT_SSH_PORT),
            ssh_key_path=env.get("SSH_KEY_PATH") or None,
            ssh_key_passphrase=env.get("SSH_KEY_PASSPHRASE") or None,
            ssh_password=env.get("SSH_PASSWORD") or None,
            ssh_verify_host_key=env.get("SSH_VERIFY_HOST_KEY", "false").strip().lower() in TRUE_TOKENS,
            connect_timeout=_int("SSH_CONNECT_TIMEOUT", CONNECT_TIMEOUT),
            max_capture_bytes=max(0, _int("SSH_MAX_CAPTURE_BYTES", 0)),
            app_dir=env.get("APP_DIR", DEFAULT_APP_DIR),
            rails_bin=env.get("RAILS_BIN", DEFAULT_RAILS_BIN),
            rails_env=env.get("RAILS_ENV", DEFAULT_RAILS_ENV),
            use_login_shell=env.get("USE_LOGIN_SHELL", "false").strip().lower() == "true",
            adapters=env.get("MCP_ADAPTERS") or env.get("MCP_ADAPTER") or "",
            journalctl_max_lines=max_lines,
        )

    def with_overrides(self, **overrides) -> "ServerConfig":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @property
    def has_auth(self) -> bool:
        return bool(self.ssh_key_path or self.ssh_password)

    def summary(self) -> str:
        return (
            f"host={self.ssh_host}:{self.ssh_port}, user={self.ssh_user}, "
            f"app_dir={self.app_dir}, rails_bin={self.rails_bin}, rails_env={self.rails_env}, "
            f"login_shell={self.use_login_shell}, verify_host={self.ssh_verify_host_key}, "
            f"auth={'key' if self.ssh_key_path else 'password' if self.ssh_password else 'none'}"
        )
