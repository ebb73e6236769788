"""
Exception hierarchy shared by the agent, the sandbox layer and the HTTP surface.

Each error carries a ``kind`` used on the wire so that clients can tell a
provider outage from an agent loop that ran away.
"""


class AnalystError(Exception):
    """Base exception for all analyst errors."""
    kind = "internal"


class AgentError(AnalystError):
    """Base exception for agent state machine failures."""
    pass


class AgentIterationLimitError(AgentError):
    """Raised when the AGENT/TOOLS loop exceeds its iteration ceiling."""
    kind = "recursion_limit"

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Agent exceeded the maximum of {limit} iterations for this turn")


class ModelProviderError(AgentError):
    """Raised when the LLM provider call fails."""
    kind = "upstream"


class SandboxError(AnalystError):
    """Base exception for sandbox-related errors."""
    kind = "upstream"


class SandboxInitializationError(SandboxError):
    """Raised when sandbox initialization fails."""
    pass


class SandboxFileOperationError(SandboxError):
    """Raised when file operations fail."""
    pass


class SandboxCommandError(SandboxError):
    """Raised when code or command execution fails."""
    pass


class RateLimitExceeded(AnalystError):
    """Raised when a client exceeds its request budget for the current window."""
    kind = "rate_limit"

    def __init__(self, limit: int, window_seconds: float):
        self.limit = limit
        self.window_seconds = window_seconds
        super().__init__(
            f"Rate limit exceeded: max {limit} requests per {window_seconds:g} seconds"
        )
