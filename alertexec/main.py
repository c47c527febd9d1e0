"""FastAPI application entry point.

Builds the application around a :class:`~alertexec.config.Settings`
instance, registers the error handlers that turn pipeline errors into
responses, provides the health probe, and runs Uvicorn from the command
line.
"""

import argparse
import logging
import socket
import sys
from contextlib import asynccontextmanager
from typing import Optional, Sequence

import yaml
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from alertexec import __version__
from alertexec.api.alert import remote_addr, router as alert_router
from alertexec.config import Settings, format_duration, load_settings
from alertexec.errors import AlertExecError, FatalError
from alertexec.logs import configure_logging, parse_level

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings) -> FastAPI:
    """Return a FastAPI app bound to *settings*.

    The settings are stored on ``app.state`` and reach request handlers
    through :func:`~alertexec.api.alert.get_app_settings`.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("http server starting", extra={"addr": settings.listen})
        yield
        logger.info("http server stopped cleanly")

    app = FastAPI(
        title="alert-exec",
        version=__version__,
        description="Runs a command for every Alertmanager webhook notification.",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings

    app.add_exception_handler(AlertExecError, alert_exec_error_handler)
    app.include_router(alert_router)
    app.add_api_route(
        "/healthz",
        healthz,
        methods=["GET", "HEAD"],
        response_class=PlainTextResponse,
    )
    return app


async def alert_exec_error_handler(request: Request, exc: AlertExecError) -> PlainTextResponse:
    """Log a pipeline error and answer with its status and short text."""
    extra = {"remote_addr": remote_addr(request)}
    if exc.log_level >= logging.ERROR:
        extra["error"] = str(exc)
    logger.log(exc.log_level, exc.log_message, extra=extra)
    return PlainTextResponse(exc.detail, status_code=exc.status_code)


async def healthz() -> PlainTextResponse:
    """Liveness probe."""
    return PlainTextResponse("ok")


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="alert-exec",
        description="Run a command for every Alertmanager webhook notification.",
    )
    parser.add_argument("--config", help="Path to config file (YAML)")
    parser.add_argument("--listen", help="Address to listen on, e.g. :9095")
    parser.add_argument("--command", help="Command to execute")
    parser.add_argument("--token", help="Shared secret token expected in requests")
    parser.add_argument("--timeout", help="Command timeout, e.g. 5s, 1m")
    parser.add_argument("--log-level", help="Log level: debug, info, warn, error")
    return parser.parse_args(argv)


def _startup(argv: Optional[Sequence[str]]) -> Settings:
    """Load configuration and check the listen address.

    Raises:
        FatalError: If the service cannot start.
    """
    args = _parse_args(argv)
    try:
        settings = load_settings(
            args.config,
            listen=args.listen or None,
            command=args.command or None,
            token=args.token or None,
            timeout=args.timeout or None,
            log_level=args.log_level or None,
        )
    except (OSError, yaml.YAMLError, ValidationError) as exc:
        raise FatalError(f"failed to load config: {exc}") from exc

    configure_logging(settings.log_level)
    logger.info(
        "starting alert-exec",
        extra={
            "listen": settings.listen,
            "command": settings.command,
            "timeout": format_duration(settings.timeout),
            "has_token": bool(settings.token),
        },
    )

    host, port = settings.bind_address()
    if not _is_port_available(host, port):
        raise FatalError(f"cannot listen on {settings.listen}")
    return settings


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Run the service via Uvicorn; exits with status 1 if it cannot start."""
    import uvicorn

    configure_logging("info")
    try:
        settings = _startup(argv)
    except FatalError as exc:
        logger.error("server exited with error", extra={"error": str(exc)})
        sys.exit(1)

    host, port = settings.bind_address()
    uvicorn.run(
        create_app(settings),
        host=host,
        port=port,
        log_config=None,
        log_level=parse_level(settings.log_level),
        access_log=False,
    )


def _is_port_available(host: str, port: int) -> bool:
    """Return ``True`` when a host/port can be bound by this process."""
    try:
        addrinfo = socket.getaddrinfo(
            host,
            port,
            socket.AF_UNSPEC,
            socket.SOCK_STREAM,
            0,
            socket.AI_PASSIVE,
        )
    except socket.gaierror:
        return False

    for family, socktype, proto, _canon, sockaddr in addrinfo:
        with socket.socket(family, socktype, proto) as sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            try:
                sock.bind(sockaddr)
            except OSError:
                return False
    return True


if __name__ == "__main__":
    main()
