"""Exception types shared across the agent runtime."""


class AgentError(Exception):
    """Raised by the agent loop or setup helpers for reportable runtime failures."""


class ConfigError(AgentError):
    """Raised for invalid configuration (missing model, bad API key, etc.)."""


class TransportError(AgentError):
    """Raised when the completion service fails while a round is streaming."""


class EmptyResponseError(AgentError):
    """Raised when the model ends a round with neither content nor tool calls."""


class HistoryError(AgentError):
    """Raised when an append would break conversation pairing invariants."""


class ToolRegistrationError(ValueError):
    """Raised for an empty or duplicate tool name at registration time."""


class NotebookError(AgentError):
    """Raised by the notebook store for a duplicate add or a missing key."""
