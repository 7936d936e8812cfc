"""Error types and CLI error handling for fmail."""

from __future__ import annotations

import sys

import click

from .logging import FmailError, get_logger

logger = get_logger(__name__)


class ConfigError(FmailError):
    code = "config_error"


class AuthenticationError(FmailError):
    code = "authentication_failed"


class TransportError(FmailError):
    """Network failure or an HTTP status the transport could not recover from."""

    code = "transport_error"


class RetryExhaustedError(TransportError):
    def __init__(self, status: int):
        super().__init__(f"max retries exceeded: received status {status}")
        self.status = status


class NonReplayableBodyError(TransportError):
    """A transient failure needs a retry but the request body can't be resent."""


class OperationCancelledError(FmailError):
    """The caller's deadline or cancellation fired before the operation finished."""

    code = "cancelled"


class MethodError(FmailError):
    """The server rejected an entire method call within an exchange."""

    code = "jmap_error"

    def __init__(
        self,
        method: str,
        call_id: str,
        error_type: str,
        description: str | None = None,
    ):
        detail = error_type
        if description:
            detail = f"{error_type}: {description}"
        if method == "unknown":
            message = f"call {call_id} returned {detail}"
        else:
            message = f"{method} (call {call_id}) returned {detail}"
        super().__init__(message)
        self.method = method
        self.call_id = call_id
        self.error_type = error_type
        self.description = description


class ForbiddenError(FmailError):
    """A safety guardrail blocked the requested operation."""

    code = "forbidden_operation"

    def __init__(
        self,
        operation: str,
        reason: str,
        hint: str = "Deletion and sending are not permitted by this tool",
    ):
        super().__init__(f"forbidden operation: {operation}: {reason}", hint=hint)
        self.operation = operation
        self.reason = reason


class NotFoundError(FmailError):
    code = "not_found"


class PartialFailureError(FmailError):
    """Raised by CLI commands after rendering a result that contains failures."""

    code = "partial_failure"


class ErrorHandlingGroup(click.Group):
    """Click group that handles FmailError with clean, structured output.

    The output format follows the ``format`` setting stored on the context
    object by the root command (JSON unless text was requested).
    """

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except FmailError as e:
            self._handle_error(ctx, e)

    def _handle_error(self, ctx: click.Context, error: FmailError) -> None:
        """Log error, write it to stderr, and exit non-zero."""
        from .output import format_error

        logger.error(str(error), code=error.code)
        fmt = (ctx.obj or {}).get("format", "json")
        click.echo(format_error(error.code, str(error), error.hint, fmt), err=True)
        sys.exit(1)
