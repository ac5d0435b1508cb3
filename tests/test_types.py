"""
Tests for embedded_postgres.types module.
"""

from pathlib import Path

import pytest

from embedded_postgres.errors import ConfigError
from embedded_postgres.types import (
    Config,
    PostgresVersion,
    Readiness,
    ReadinessOutcome,
    State,
)


class TestConfigDefaults:
    """Tests for Config defaults."""

    def test_defaults(self):
        config = Config.default()

        assert config.version == PostgresVersion.V12_1_0
        assert config.port == 5432
        assert config.database == "postgres"
        assert config.username == "postgres"
        assert config.password == "postgres"
        assert config.runtime_path is None
        assert config.start_timeout == 15.0
        assert config.stop_timeout == 5.0

    def test_version_string(self):
        assert Config.default().version_string == "12.1.0"

    def test_version_string_accepts_plain_string(self):
        config = Config.default().with_version("13.2.0")
        assert config.version_string == "13.2.0"


class TestConfigWithMethods:
    """Tests for the copy-on-write with_* methods."""

    def test_returns_new_value(self):
        original = Config.default()
        changed = original.with_port(15432)

        assert changed is not original
        assert changed.port == 15432
        assert original.port == 5432

    def test_chaining(self):
        config = (
            Config.default()
            .with_version(PostgresVersion.V11_6_0)
            .with_port(15432)
            .with_database("testdb")
            .with_username("alice")
            .with_password("secret")
            .with_runtime_path("/tmp/pg")
            .with_start_timeout(10)
            .with_stop_timeout(2)
            .with_init_timeout(30)
            .with_cache_path("/tmp/cache")
            .with_binary_repository_url("https://mirror.example.com/maven2/")
        )

        assert config.version_string == "11.6.0"
        assert config.port == 15432
        assert config.database == "testdb"
        assert config.username == "alice"
        assert config.password == "secret"
        assert config.runtime_path == Path("/tmp/pg")
        assert config.start_timeout == 10.0
        assert config.stop_timeout == 2.0
        assert config.init_timeout == 30.0
        assert config.cache_path == Path("/tmp/cache")
        assert config.binary_repository_url == "https://mirror.example.com/maven2"

    def test_is_frozen(self):
        config = Config.default()
        with pytest.raises(AttributeError):
            config.port = 1

    def test_equal_configs_compare_equal(self):
        assert Config.default().with_port(1234) == Config.default().with_port(1234)


class TestConfigValidation:
    """Tests for Config validation."""

    @pytest.mark.parametrize("port", [0, -1, 65536])
    def test_invalid_port(self, port):
        with pytest.raises(ConfigError):
            Config.default().with_port(port)

    def test_empty_database(self):
        with pytest.raises(ConfigError):
            Config.default().with_database("")

    def test_empty_username(self):
        with pytest.raises(ConfigError):
            Config.default().with_username("")

    @pytest.mark.parametrize(
        "method", ["with_start_timeout", "with_stop_timeout", "with_init_timeout"]
    )
    def test_non_positive_timeout(self, method):
        with pytest.raises(ConfigError):
            getattr(Config.default(), method)(0)


class TestState:
    """Tests for State enum."""

    @pytest.mark.parametrize("state", [State.IDLE, State.STOPPED, State.FAILED])
    def test_can_start(self, state):
        assert state.can_start

    @pytest.mark.parametrize(
        "state",
        [State.INITIALIZING, State.STARTING, State.READY, State.STOPPING],
    )
    def test_cannot_start(self, state):
        assert not state.can_start


class TestReadiness:
    """Tests for Readiness."""

    def test_is_ready(self):
        assert Readiness(ReadinessOutcome.READY, attempts=1).is_ready

    def test_timed_out_is_not_ready(self):
        error = ConnectionRefusedError("refused")
        readiness = Readiness(ReadinessOutcome.TIMED_OUT, attempts=5, error=error)

        assert not readiness.is_ready
        assert readiness.error is error
