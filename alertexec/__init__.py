"""alert-exec: run a command for every Alertmanager webhook notification."""

__version__ = "0.1.0"
