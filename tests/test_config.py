"""Tests for :mod:`alertexec.config`."""

import pytest
from pydantic import ValidationError

from alertexec.config import (
    Settings,
    format_duration,
    load_settings,
    parse_duration,
    parse_listen,
)


class TestSettings:
    """Verify default configuration values."""

    def test_default_listen(self):
        """Default listen address should be :9095."""
        s = Settings()
        assert s.listen == ":9095"

    def test_default_command(self):
        """Default command should be the evolution sender."""
        s = Settings()
        assert s.command == "/usr/local/bin/send-evolution"

    def test_default_args(self):
        """No arguments by default."""
        s = Settings()
        assert s.args == []

    def test_default_timeout(self):
        """Default timeout should be 5 seconds."""
        s = Settings()
        assert s.timeout == 5.0

    def test_default_token(self):
        """Token check is disabled by default."""
        s = Settings()
        assert s.token == ""

    def test_default_log_level(self):
        """Default log level should be info."""
        s = Settings()
        assert s.log_level == "info"

    def test_default_max_body(self):
        """Webhook bodies are limited to 1 MiB."""
        s = Settings()
        assert s.max_body_bytes == 1024 * 1024

    def test_timeout_accepts_duration_string(self):
        """Duration strings are converted to seconds."""
        s = Settings(timeout="250ms")
        assert s.timeout == pytest.approx(0.25)

    def test_timeout_must_be_positive(self):
        """Zero or negative timeouts are rejected."""
        with pytest.raises(ValidationError):
            Settings(timeout=0)
        with pytest.raises(ValidationError):
            Settings(timeout="-1")

    def test_bad_timeout_string(self):
        """Unparseable durations are rejected."""
        with pytest.raises(ValidationError):
            Settings(timeout="soon")

    def test_empty_command_rejected(self):
        """An empty command is a configuration error."""
        with pytest.raises(ValidationError):
            Settings(command="")

    def test_bad_listen_rejected(self):
        """A listen address without a port is rejected."""
        with pytest.raises(ValidationError):
            Settings(listen="localhost")
        with pytest.raises(ValidationError):
            Settings(listen="")

    def test_frozen(self):
        """Settings cannot be changed after construction."""
        s = Settings()
        with pytest.raises(ValidationError):
            s.token = "changed"

    def test_bind_address(self):
        """bind_address() splits the listen address."""
        s = Settings(listen="127.0.0.1:8081")
        assert s.bind_address() == ("127.0.0.1", 8081)


class TestEnvironment:
    """Verify ALERT_EXEC_* environment variables."""

    def test_env_overrides_default(self, monkeypatch):
        """Environment values replace defaults."""
        monkeypatch.setenv("ALERT_EXEC_COMMAND", "/bin/true")
        monkeypatch.setenv("ALERT_EXEC_TIMEOUT", "1m")
        s = Settings()
        assert s.command == "/bin/true"
        assert s.timeout == 60.0

    def test_env_args_json_list(self, monkeypatch):
        """Arguments are read from a JSON list."""
        monkeypatch.setenv("ALERT_EXEC_ARGS", '["--status", "{{ status }}"]')
        s = Settings()
        assert s.args == ["--status", "{{ status }}"]

    def test_init_overrides_env(self, monkeypatch):
        """Explicit keyword values beat the environment."""
        monkeypatch.setenv("ALERT_EXEC_TOKEN", "from-env")
        s = Settings(token="from-flag")
        assert s.token == "from-flag"


class TestLoadSettings:
    """Verify config file loading and precedence."""

    def test_without_file(self):
        """No config file yields defaults."""
        s = load_settings()
        assert s.listen == ":9095"

    def test_yaml_file(self, tmp_path):
        """Values come from the YAML file."""
        path = tmp_path / "config.yaml"
        path.write_text(
            "listen: ':9999'\n"
            "command: /usr/bin/logger\n"
            "args:\n"
            "  - '-t'\n"
            "  - '{{ receiver }}'\n"
            "timeout: 10s\n"
        )
        s = load_settings(str(path))
        assert s.listen == ":9999"
        assert s.command == "/usr/bin/logger"
        assert s.args == ["-t", "{{ receiver }}"]
        assert s.timeout == 10.0
        assert isinstance(s, Settings)

    def test_env_beats_file(self, tmp_path, monkeypatch):
        """Environment variables take precedence over the file."""
        path = tmp_path / "config.yaml"
        path.write_text("timeout: 10s\n")
        monkeypatch.setenv("ALERT_EXEC_TIMEOUT", "2s")
        s = load_settings(str(path))
        assert s.timeout == 2.0

    def test_overrides_beat_env(self, tmp_path, monkeypatch):
        """Overrides (flags) take precedence over everything."""
        path = tmp_path / "config.yaml"
        path.write_text("timeout: 10s\n")
        monkeypatch.setenv("ALERT_EXEC_TIMEOUT", "2s")
        s = load_settings(str(path), timeout="3s")
        assert s.timeout == 3.0

    def test_none_overrides_ignored(self):
        """Unset flags do not clobber other sources."""
        s = load_settings(None, command=None, token=None)
        assert s.command == "/usr/local/bin/send-evolution"

    def test_missing_file(self, tmp_path):
        """A missing config file is an error."""
        with pytest.raises(FileNotFoundError):
            load_settings(str(tmp_path / "nope.yaml"))


class TestDurations:
    """Verify duration parsing and formatting."""

    @pytest.mark.parametrize(
        "text,seconds",
        [
            ("5s", 5.0),
            ("100ms", 0.1),
            ("1m30s", 90.0),
            ("1h", 3600.0),
            ("1.5s", 1.5),
            ("250us", 0.00025),
            ("7", 7.0),
            ("0.5", 0.5),
        ],
    )
    def test_parse(self, text, seconds):
        """Duration strings and bare numbers are understood."""
        assert parse_duration(text) == pytest.approx(seconds)

    @pytest.mark.parametrize("text", ["", "s", "5x", "5s garbage", "nan", "inf"])
    def test_parse_invalid(self, text):
        """Malformed durations raise ValueError."""
        with pytest.raises(ValueError):
            parse_duration(text)

    @pytest.mark.parametrize(
        "seconds,text",
        [(0.1, "100ms"), (5.0, "5s"), (1.5, "1.5s"), (90.0, "1m30s"), (3600.0, "1h0m0s")],
    )
    def test_format(self, seconds, text):
        """Durations are rendered compactly."""
        assert format_duration(seconds) == text


class TestParseListen:
    """Verify listen address parsing."""

    def test_port_only(self):
        """An empty host means all interfaces."""
        assert parse_listen(":9095") == ("0.0.0.0", 9095)

    def test_host_and_port(self):
        """Host and port are split on the last colon."""
        assert parse_listen("127.0.0.1:8080") == ("127.0.0.1", 8080)

    def test_ipv6(self):
        """Bracketed IPv6 hosts are unwrapped."""
        assert parse_listen("[::1]:9095") == ("::1", 9095)

    @pytest.mark.parametrize("text", ["9095", "host:", "host:http", ":70000"])
    def test_invalid(self, text):
        """Addresses without a valid port raise ValueError."""
        with pytest.raises(ValueError):
            parse_listen(text)
