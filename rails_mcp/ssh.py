import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import paramiko

from rails_mcp.config import BUFFER_SIZE, ServerConfig
from rails_mcp.errors import ConfigurationError, TransportError
from rails_mcp.utils import log, truncate_for_log


@dataclass
class RemoteCommandResult:
    stdout: str
    stderr: str
    # None: the channel closed without an exit-status message.
    exit_status: Optional[int]
    truncated: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class _StreamCollector:
    """Drains one channel stream into memory until EOF."""

    def __init__(self, read: Callable[[int], bytes], limit: int = 0):
        self._read = read
        self._limit = limit
        self._chunks = []
        self._size = 0
        self.truncated = False
        self.error: Optional[BaseException] = None

    def run(self) -> None:
        try:
            while True:
                data = self._read(BUFFER_SIZE)
                if not data:
                    break
                if self._limit and self._size + len(data) > self._limit:
                    keep = max(0, self._limit - self._size)
                    data = data[:keep]
                    self.truncated = True
                if data:
                    self._chunks.append(data)
                    self._size += len(data)
        except Exception as exc:
            self.error = exc

    def text(self) -> str:
        return b"".join(self._chunks).decode("utf-8", errors="replace")


class RemoteExecutor:
    """Runs exactly one command per call in a fresh SSH session.

    No session reuse, pooling or retry: each ``execute`` connects,
    authenticates, runs the command, drains stdout and stderr on two threads,
    waits for the exit status and disconnects.
    """

    def __init__(self, config: ServerConfig, client_factory: Callable[[], Any] = paramiko.SSHClient):
        self.config = config
        self.client_factory = client_factory

    def _connect_kwargs(self) -> Dict[str, Any]:
        cfg = self.config
        connect_kwargs = {
            "hostname": cfg.ssh_host,
            "port": cfg.ssh_port,
            "username": cfg.ssh_user,
            "timeout": cfg.connect_timeout,
            "allow_agent": False,
            "look_for_keys": False,
        }
        if cfg.ssh_key_path:
            connect_kwargs["key_filename"] = cfg.ssh_key_path
            if cfg.ssh_key_passphrase:
                connect_kwargs["passphrase"] = cfg.ssh_key_passphrase
        elif cfg.ssh_password:
            connect_kwargs["password"] = cfg.ssh_password
        else:
            raise ConfigurationError("No SSH auth provided (SSH_KEY_PATH or SSH_PASSWORD)")
        return connect_kwargs

    def _open_client(self):
        connect_kwargs = self._connect_kwargs()
        client = self.client_factory()
        if self.config.ssh_verify_host_key:
            client.load_system_host_keys()
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(**connect_kwargs)
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            raise TransportError(f"SSH connection to {self.config.ssh_host}:{self.config.ssh_port} failed: {exc}") from exc
        return client

    def execute(self, command: str) -> RemoteCommandResult:
        log(f"SSH exec starting: {command}")
        client = self._open_client()
        try:
            try:
                _stdin, stdout_stream, _stderr = client.exec_command(command, get_pty=False)
            except paramiko.SSHException as exc:
                raise TransportError(f"Failed to exec remote command: {exc}") from exc
            channel = stdout_stream.channel

            limit = self.config.max_capture_bytes
            collectors = [_StreamCollector(channel.recv, limit), _StreamCollector(channel.recv_stderr, limit)]
            threads = [threading.Thread(target=c.run, daemon=True) for c in collectors]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()
            for collector in collectors:
                if collector.error is not None:
                    raise TransportError(f"SSH stream read failed: {collector.error}") from collector.error

            exit_status = channel.recv_exit_status()
            # paramiko reports -1 when the channel closed without an exit-status message.
            if exit_status == -1:
                exit_status = None
        finally:
            client.close()

        result = RemoteCommandResult(
            stdout=collectors[0].text(),
            stderr=collectors[1].text(),
            exit_status=exit_status,
            truncated=any(c.truncated for c in collectors),
        )
        log(
            f"SSH exec finished: exit={result.exit_status}, stdout={truncate_for_log(result.stdout)}, "
            f"stderr={truncate_for_log(result.stderr)}"
        )
        return result
