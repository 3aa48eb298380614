"""Error taxonomy for searchloop.

Recoverable tool errors are turned into tool-result payloads so the model
can correct itself. Every other :class:`SearchLoopError` ends the run and
is reported through :class:`searchloop.result.FailedRun`.
"""


class SearchLoopError(Exception):
    """Base class for all searchloop errors."""

    def __init__(self, message: str, retriable: bool = False) -> None:
        super().__init__(message)
        self.retriable = retriable


class TransportError(SearchLoopError):
    """A provider or search request failed, or the connection dropped."""

    def __init__(self, reason: str, status_code: int | None = None) -> None:
        super().__init__(f"Transport failure: {reason}", retriable=True)
        self.status_code = status_code


class StreamProtocolError(SearchLoopError):
    """The provider stream contradicted itself, e.g. a tool call id changed."""


class EmptyResponseError(SearchLoopError):
    """The provider returned neither text nor tool calls."""

    def __init__(self, iteration: int) -> None:
        super().__init__(
            f"Model finished without providing content (iteration {iteration})"
        )


class BudgetExhaustedError(SearchLoopError):
    """The iteration cap was reached before a final answer."""

    def __init__(self, max_iterations: int) -> None:
        super().__init__(
            f"Reached max iterations ({max_iterations}) without completion"
        )


class Cancelled(SearchLoopError):
    """The caller abandoned the run (timeout or explicit cancellation)."""

    def __init__(self, reason: str = "cancelled by caller") -> None:
        super().__init__(f"Run cancelled: {reason}")


class RecoverableToolError(SearchLoopError):
    """A single tool invocation failed in a way the model can fix."""


class ArgumentParseError(RecoverableToolError):
    """Tool arguments were not valid JSON or failed validation."""

    def __init__(self, tool_name: str, reason: str) -> None:
        super().__init__(f"Invalid arguments for {tool_name}: {reason}")
        self.tool_name = tool_name


class ToolNotFoundError(RecoverableToolError):
    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Tool '{tool_name}' not found")
        self.tool_name = tool_name


class TranscriptError(ValueError):
    """A turn was appended that breaks the transcript pairing rules."""
