from typing import List, Optional

import pytest

from rails_mcp.config import ServerConfig
from rails_mcp.ssh import RemoteCommandResult


class FakeExecutor:
    """Records commands and answers with canned results."""

    def __init__(self, results: Optional[List[RemoteCommandResult]] = None):
        self.results = list(results or [])
        self.commands: List[str] = []

    def execute(self, command: str) -> RemoteCommandResult:
        self.commands.append(command)
        if self.results:
            return self.results.pop(0)
        return RemoteCommandResult(stdout="", stderr="", exit_status=0)


@pytest.fixture
def config() -> ServerConfig:
    return ServerConfig(
        ssh_host="rails.example",
        ssh_user="deploy",
        ssh_password="secret",
        app_dir="/app",
    )


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()
