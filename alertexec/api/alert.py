"""API router for the Alertmanager webhook.

Endpoints
---------
* ``POST /alert``: render the configured command from the notification,
  run it, and report the outcome.

Every stage either passes its result to the next one or raises an
:class:`~alertexec.errors.AlertExecError`, which the application's
exception handler logs and turns into the error response.
"""

import logging
import math
from typing import Optional

import anyio
import anyio.to_thread
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from starlette.requests import ClientDisconnect

from alertexec.alerts.payload import Payload, parse_payload, validate_payload
from alertexec.config import Settings
from alertexec.engine.executor import ExecutionResult, run_command
from alertexec.engine.renderer import render_command
from alertexec.errors import BodyReadError, BodyTooLargeError, UnauthorizedError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["alert"])


def get_app_settings(request: Request) -> Settings:
    """Dependency returning the settings the app was created with."""
    return request.app.state.settings


async def get_execution_limiter(request: Request) -> anyio.CapacityLimiter:
    """Dependency returning the app's thread limiter for command runs.

    The limiter has no token cap, so every accepted request gets its own
    worker thread instead of queueing behind anyio's shared default pool.
    """
    state = request.app.state
    limiter = getattr(state, "execution_limiter", None)
    if limiter is None:
        limiter = anyio.CapacityLimiter(math.inf)
        state.execution_limiter = limiter
    return limiter


def remote_addr(request: Request) -> str:
    """``host:port`` of the caller, or ``""`` when unknown."""
    if request.client is None:
        return ""
    return f"{request.client.host}:{request.client.port}"


# ---------------------------------------------------------------------------
# Pipeline stages
# ---------------------------------------------------------------------------


def check_token(expected: str, provided: Optional[str]) -> None:
    """Enforce the shared-secret header when a token is configured.

    Raises:
        UnauthorizedError: If the header is missing or does not match.
    """
    if not expected:
        return
    if not provided or provided != expected:
        raise UnauthorizedError("invalid or missing token")


async def read_body(request: Request, max_bytes: int) -> bytes:
    """Read the request body, refusing anything larger than *max_bytes*.

    A declared ``Content-Length`` over the limit is rejected before any
    data is read; otherwise the stream is cut off as soon as it crosses
    the limit.

    Raises:
        BodyTooLargeError: If the body exceeds *max_bytes*.
        BodyReadError: If the client goes away mid-body.
    """
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > max_bytes:
        raise BodyTooLargeError(max_bytes)

    body = bytearray()
    try:
        async for chunk in request.stream():
            body.extend(chunk)
            if len(body) > max_bytes:
                raise BodyTooLargeError(max_bytes)
    except ClientDisconnect as exc:
        raise BodyReadError("client disconnected while sending body") from exc
    return bytes(body)


def first_line(stderr: str, error: Optional[Exception]) -> str:
    """Pick a one-line failure message for the response body."""
    if stderr:
        return stderr.split("\n", 1)[0]
    if error is not None:
        return str(error)
    return "unknown error"


def _result_fields(result: ExecutionResult, payload: Payload) -> dict:
    return {
        "command": result.command,
        "command_args": list(result.args),
        "exit_code": result.exit_code,
        "timed_out": result.timed_out,
        "duration_ms": result.duration_ms,
        "stdout": result.stdout,
        "stderr": result.stderr,
        "primary_alertname": payload.primary_alert_name,
        "alerts_count": len(payload.alerts),
    }


def build_response(result: ExecutionResult, payload: Payload) -> JSONResponse:
    """Log the execution outcome and map it to an HTTP response."""
    fields = _result_fields(result, payload)

    if result.failed:
        logger.error(
            "command execution failed",
            extra={**fields, "error": str(result.error) if result.error else None},
        )
        return JSONResponse(
            status_code=503,
            content={
                "status": "error",
                "exit_code": result.exit_code,
                "timed_out": result.timed_out,
                "message": first_line(result.stderr, result.error),
            },
        )

    logger.info("command execution succeeded", extra=fields)
    return JSONResponse(
        status_code=200,
        content={
            "status": "ok",
            "exit_code": result.exit_code,
            "timed_out": result.timed_out,
        },
    )


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------


@router.post("/alert")
async def receive_alert(
    request: Request,
    x_token: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_app_settings),
    limiter: anyio.CapacityLimiter = Depends(get_execution_limiter),
):
    """Run the configured command for one Alertmanager notification."""
    check_token(settings.token, x_token)

    body = await read_body(request, settings.max_body_bytes)
    payload = parse_payload(body)
    validate_payload(payload)

    command, args = render_command(settings.command, settings.args, payload)
    logger.info(
        "alert mapped to command",
        extra={
            "status": payload.status,
            "receiver": payload.receiver,
            "group_key": payload.group_key,
            "alerts_count": len(payload.alerts),
            "primary_alertname": payload.primary_alert_name,
            "command": command,
            "command_args": args,
            "remote_addr": remote_addr(request),
        },
    )

    # Worker thread: the deadline and kill stay in the executor's hands
    # even if the client disconnects.
    result = await anyio.to_thread.run_sync(
        run_command, command, args, settings.timeout, limiter=limiter
    )
    return build_response(result, payload)
