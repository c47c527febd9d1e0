"""Shared pytest fixtures for the alert-exec test suite.

Every test that needs the HTTP layer gets an application built from its
own :class:`~alertexec.config.Settings`, so tests never share
configuration.
"""

import copy
import logging
import sys

import pytest
from fastapi.testclient import TestClient

from alertexec.config import Settings
from alertexec.main import create_app

_SAMPLE_PAYLOAD = {
    "version": "4",
    "groupKey": '{}:{alertname="DiskFull"}',
    "truncatedAlerts": 0,
    "status": "firing",
    "receiver": "exec-bridge",
    "groupLabels": {"alertname": "DiskFull"},
    "commonLabels": {"alertname": "DiskFull", "severity": "critical"},
    "commonAnnotations": {"summary": "Disk almost full on db-1"},
    "externalURL": "http://alertmanager.local:9093",
    "alerts": [
        {
            "status": "firing",
            "labels": {"alertname": "DiskFull", "instance": "db-1:9100"},
            "annotations": {"summary": "Disk almost full on db-1"},
            "startsAt": "2024-05-01T10:00:00Z",
            "endsAt": "0001-01-01T00:00:00Z",
            "generatorURL": "http://prometheus.local/graph?g0.expr=disk",
            "fingerprint": "a1b2c3d4e5f60718",
        }
    ],
}


@pytest.fixture()
def python_command():
    """Return a helper building settings overrides that run Python code.

    The child is the current interpreter, so the tests need no system
    binaries.
    """

    def _command(code: str) -> dict:
        return {"command": sys.executable, "args": ["-c", code]}

    return _command


@pytest.fixture()
def sample_payload():
    """Return a fresh, valid Alertmanager notification dictionary."""
    return copy.deepcopy(_SAMPLE_PAYLOAD)


@pytest.fixture()
def make_client():
    """Factory building a :class:`TestClient` for custom settings.

    Yields:
        A callable accepting :class:`Settings` keyword overrides and
        returning a started test client.
    """
    clients = []

    def _make(**overrides) -> TestClient:
        client = TestClient(create_app(Settings(**overrides)))
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture()
def client(make_client):
    """Test client with default settings."""
    return make_client()


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """Undo any ``configure_logging`` call made during a test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
