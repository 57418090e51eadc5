from typing import Optional


class McpError(Exception):
    """Base class for failures raised by the server core."""


class ParseError(McpError):
    """An input line could not be read as a JSON object."""


class InvalidParamsError(McpError):
    pass


class UnknownToolError(McpError):
    def __init__(self, name: Optional[str]):
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class TransportError(McpError):
    """The SSH session or channel failed, or never reported an exit status."""


class ConfigurationError(TransportError):
    """No usable SSH authentication is configured."""


class RemoteExecutionError(McpError):
    def __init__(self, message: str, exit_status: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.exit_status = exit_status
        self.stderr = stderr
