"""Run an external command with a wall-clock deadline.

:func:`run_command` never raises for an ordinary failure.  The outcome is
encoded in the returned :class:`ExecutionResult`:

* exit 0: ``exit_code == 0`` and ``error is None``.
* non-zero exit: the real exit code and a :class:`CommandExitError`.
* killed by a signal, or could not be started: ``exit_code == -1`` and a
  :class:`CommandExitError` / :class:`CommandLaunchError`.
* deadline reached: the child is killed, ``timed_out`` is set,
  ``exit_code == -1`` and the error is a :class:`CommandTimeoutError`.

Standard output and error are buffered in memory in full.
"""

import logging
import signal
import subprocess
import time
from dataclasses import dataclass
from typing import Optional, Sequence

from alertexec.errors import (
    CommandExitError,
    CommandLaunchError,
    CommandTimeoutError,
    ExecutionError,
)

logger = logging.getLogger(__name__)

#: Exit code reported when the process produced no meaningful one.
NO_EXIT_CODE = -1


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one command execution.

    Attributes:
        command: Executable path that was run.
        args: Arguments it was given.
        stdout: Captured standard output.
        stderr: Captured standard error.
        exit_code: ``0`` on success, the process exit code, or ``-1``.
        duration: Seconds from launch attempt to outcome.
        timed_out: Whether the deadline was reached and the child killed.
        error: Failure classification, ``None`` on success.
    """

    command: str
    args: tuple[str, ...]
    stdout: str
    stderr: str
    exit_code: int
    duration: float
    timed_out: bool = False
    error: Optional[ExecutionError] = None

    @property
    def duration_ms(self) -> int:
        return int(self.duration * 1000)

    @property
    def failed(self) -> bool:
        """``True`` for any outcome other than a clean exit 0."""
        return self.error is not None or self.exit_code != 0 or self.timed_out


def _decode(data: Optional[bytes]) -> str:
    return data.decode("utf-8", errors="replace") if data else ""


def _kill(proc: subprocess.Popen) -> None:
    """Send SIGKILL and release the pipes without waiting for the child."""
    try:
        proc.kill()
    except OSError as exc:
        logger.warning(
            "failed to kill timed out command",
            extra={"pid": proc.pid, "error": str(exc)},
        )
    for stream in (proc.stdout, proc.stderr):
        if stream is not None:
            stream.close()
    # Reap immediately if the child is already gone; never block here.
    proc.poll()


def _classify_exit(returncode: int) -> tuple[int, Optional[ExecutionError]]:
    if returncode == 0:
        return 0, None
    if returncode < 0:
        try:
            name = signal.Signals(-returncode).name
        except ValueError:
            name = str(-returncode)
        return NO_EXIT_CODE, CommandExitError(returncode, signal_name=name)
    return returncode, CommandExitError(returncode)


def run_command(command: str, args: Sequence[str], timeout: float) -> ExecutionResult:
    """Execute *command* with *args*, killing it after *timeout* seconds.

    Args:
        command: Path (or ``PATH``-resolvable name) of the executable.
        args: Arguments passed to the executable.
        timeout: Deadline in seconds.

    Returns:
        An :class:`ExecutionResult` describing the outcome.
    """
    args = tuple(args)
    start = time.monotonic()

    logger.debug("launching command", extra={"command": command, "command_args": list(args)})
    try:
        proc = subprocess.Popen(
            [command, *args],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except (OSError, ValueError) as exc:
        return ExecutionResult(
            command=command,
            args=args,
            stdout="",
            stderr="",
            exit_code=NO_EXIT_CODE,
            duration=time.monotonic() - start,
            error=CommandLaunchError(command, exc),
        )

    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired as exc:
        _kill(proc)
        return ExecutionResult(
            command=command,
            args=args,
            stdout=_decode(exc.stdout),
            stderr=_decode(exc.stderr),
            exit_code=NO_EXIT_CODE,
            duration=time.monotonic() - start,
            timed_out=True,
            error=CommandTimeoutError(timeout),
        )

    exit_code, error = _classify_exit(proc.returncode)
    return ExecutionResult(
        command=command,
        args=args,
        stdout=_decode(stdout),
        stderr=_decode(stderr),
        exit_code=exit_code,
        duration=time.monotonic() - start,
        error=error,
    )
