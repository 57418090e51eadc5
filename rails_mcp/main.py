import argparse
import io
import sys

from dotenv import find_dotenv, load_dotenv

from rails_mcp.adapters import build_registry
from rails_mcp.config import ServerConfig
from rails_mcp.server import serve
from rails_mcp.ssh import RemoteExecutor
from rails_mcp.utils import log


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="MCP stdio server running Rails runner and journalctl commands on a remote host over SSH"
    )
    parser.add_argument("--host", help="SSH host (overrides SSH_HOST env)")
    parser.add_argument("--user", help="SSH username (overrides SSH_USER env)")
    parser.add_argument("--port", type=int, help="SSH port (overrides SSH_PORT env)")
    parser.add_argument("--password", help="SSH password (overrides SSH_PASSWORD env)")
    parser.add_argument("--key", help="Path to SSH private key (overrides SSH_KEY_PATH env)")
    parser.add_argument("--passphrase", help="Passphrase for SSH private key (overrides SSH_KEY_PASSPHRASE env)")
    verify_group = parser.add_mutually_exclusive_group()
    verify_group.add_argument("--verify-host", action="store_true", help="Verify the SSH host key against system known hosts")
    verify_group.add_argument("--no-verify-host", action="store_true", help="Accept any SSH host key (default)")
    parser.add_argument("--app-dir", help="Remote application directory (overrides APP_DIR env)")
    parser.add_argument("--rails-bin", help="Remote runner binary (overrides RAILS_BIN env)")
    parser.add_argument("--rails-env", help="Remote RAILS_ENV value (overrides RAILS_ENV env)")
    parser.add_argument("--login-shell", action="store_true", default=None, help="Wrap commands in bash -lc")
    parser.add_argument("--adapters", help="Comma-separated optional adapters (overrides MCP_ADAPTERS env)")
    return parser


def load_config(argv=None) -> ServerConfig:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Look for .env in the working directory, not next to the installed package.
    load_dotenv(find_dotenv(usecwd=True), override=False)
    try:
        config = ServerConfig.from_env()
    except ValueError as exc:
        parser.error(f"invalid SSH_PORT: {exc}")

    verify_host = None
    if args.no_verify_host:
        verify_host = False
    elif args.verify_host:
        verify_host = True

    config = config.with_overrides(
        ssh_host=args.host,
        ssh_user=args.user,
        ssh_port=args.port,
        ssh_password=args.password,
        ssh_key_path=args.key,
        ssh_key_passphrase=args.passphrase,
        ssh_verify_host_key=verify_host,
        app_dir=args.app_dir,
        rails_bin=args.rails_bin,
        rails_env=args.rails_env,
        use_login_shell=args.login_shell,
        adapters=args.adapters,
    )

    if not config.ssh_host:
        parser.error("SSH host is required (via --host or SSH_HOST env)")
    if not config.ssh_user:
        parser.error("SSH user is required (via --user or SSH_USER env)")
    if not config.has_auth:
        log("WARNING: no SSH auth configured (SSH_KEY_PATH or SSH_PASSWORD); remote tool calls will fail")
    return config


def main(argv=None) -> None:
    config = load_config(argv)
    log(f"Config loaded: {config.summary()}")
    if not config.ssh_verify_host_key:
        log("SSH host key verification disabled; any host key is accepted")

    registry = build_registry(config, RemoteExecutor(config))

    # Force UTF-8 on the protocol streams regardless of the platform locale.
    stdin = io.TextIOWrapper(sys.stdin.buffer, encoding="utf-8", errors="replace")
    stdout = io.TextIOWrapper(sys.stdout.buffer, encoding="utf-8", line_buffering=True)
    serve(registry, stdin, stdout)


if __name__ == "__main__":
    main()
