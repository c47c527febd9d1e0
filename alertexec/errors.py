"""Error taxonomy shared by the request pipeline.

Every error raised while handling a request derives from
:class:`AlertExecError` and knows how it is reported: the HTTP status,
the short ``text/plain`` body sent back to the caller, and the message and
level of the log record written for it.

* :class:`ClientError`: the caller sent something unusable (4xx).
* :class:`ConfigurationError`: the operator's templates are broken (500).
* :class:`ExecutionError`: the downstream command failed (503).  These are
  never raised into the HTTP layer; the executor returns them inside an
  :class:`~alertexec.engine.executor.ExecutionResult`.
* :class:`FatalError`: the service cannot start at all.
"""

import logging
from typing import Optional

from alertexec.config import format_duration


class AlertExecError(Exception):
    """Base class for errors reported to an HTTP caller."""

    status_code: int = 500
    detail: str = "internal error"
    log_message: str = "request failed"
    log_level: int = logging.ERROR


# ---------------------------------------------------------------------------
# Client errors
# ---------------------------------------------------------------------------


class ClientError(AlertExecError):
    """The request itself is at fault."""

    status_code = 400
    detail = "bad request"


class UnauthorizedError(ClientError):
    """Shared-secret header missing or wrong."""

    status_code = 401
    detail = "unauthorized"
    log_message = "unauthorized request: invalid or missing token"
    log_level = logging.WARNING


class BodyReadError(ClientError):
    """The request body could not be read."""

    log_message = "failed to read request body"


class BodyTooLargeError(BodyReadError):
    """The request body exceeds the configured limit."""

    def __init__(self, max_bytes: int) -> None:
        super().__init__(f"request body exceeds {max_bytes} bytes")
        self.max_bytes = max_bytes


class PayloadParseError(ClientError):
    """The body is not a well-formed Alertmanager document."""

    detail = "invalid JSON"
    log_message = "failed to parse alertmanager payload"


class PayloadValidationError(ClientError):
    """The document parsed but is missing required content."""

    detail = "invalid payload"
    log_message = "invalid alertmanager payload"


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------


class ConfigurationError(AlertExecError):
    """Operator supplied configuration cannot be applied to a request."""

    status_code = 500


class TemplateRenderError(ConfigurationError):
    """A command or argument template failed to compile or render.

    Attributes:
        target: ``"command"`` or ``"arg N"``.
        template: The raw template text.
    """

    detail = "template error"
    log_message = "failed to render command from template"

    def __init__(self, target: str, template: str, cause: Exception) -> None:
        super().__init__(f"rendering {target} template {template!r}: {cause}")
        self.target = target
        self.template = template


# ---------------------------------------------------------------------------
# Execution errors
# ---------------------------------------------------------------------------


class ExecutionError(AlertExecError):
    """The command ran (or tried to) and did not succeed."""

    status_code = 503
    detail = "service unavailable"
    log_message = "command execution failed"


class CommandTimeoutError(ExecutionError):
    """The command outlived its deadline and was killed."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"command timed out after {format_duration(timeout)}")
        self.timeout = timeout


class CommandLaunchError(ExecutionError):
    """The command could not be started."""

    def __init__(self, command: str, cause: Exception) -> None:
        super().__init__(f"failed to start {command!r}: {cause}")
        self.command = command


class CommandExitError(ExecutionError):
    """The command exited unsuccessfully.

    ``signal`` is set when the process was terminated by a signal rather
    than exiting on its own.
    """

    def __init__(self, returncode: int, signal_name: Optional[str] = None) -> None:
        if signal_name:
            message = f"signal: {signal_name}"
        else:
            message = f"exit status {returncode}"
        super().__init__(message)
        self.returncode = returncode
        self.signal = signal_name


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


class FatalError(Exception):
    """The service cannot start; ``main`` exits non-zero."""
