"""Tests for configuration helpers."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from ingestdb import config as config_module
from ingestdb.config import AppConfig, ConfigError, DatabaseConfig, RetryPolicy, load_config


def test_connect_string_omits_tls_when_disabled() -> None:
    config = DatabaseConfig(
        host="localhost",
        port=5555,
        user="user",
        password="pass",
        database="db",
        sslmode="disable",
        ca_cert="/certs/ca.pem",
        client_cert="/certs/client.pem",
        client_key="/certs/client-key.pem",
    )

    assert config.connect_string() == (
        "host=localhost port=5555 user=user password=pass dbname=db sslmode=disable"
    )


def test_connect_string_includes_only_configured_tls_paths() -> None:
    config = DatabaseConfig(
        host="localhost",
        port=5555,
        user="user",
        password="pass",
        database="db",
        sslmode="verify-full",
        ca_cert="/certs/ca.pem",
    )

    result = config.connect_string()

    assert result == (
        "host=localhost port=5555 user=user password=pass dbname=db sslmode=verify-full "
        "sslrootcert=/certs/ca.pem"
    )
    assert "sslcert" not in result
    assert "sslkey" not in result


def test_connect_string_appends_client_pair() -> None:
    config = DatabaseConfig(
        sslmode="verify-ca",
        client_cert="/certs/client.pem",
        client_key="/certs/client-key.pem",
    )

    assert config.connect_string().endswith(
        "sslmode=verify-ca sslcert=/certs/client.pem sslkey=/certs/client-key.pem"
    )


def test_connect_string_can_mask_password() -> None:
    config = DatabaseConfig(user="lega_in", password="hunter2", database="lega", sslmode="disable")

    assert config.connect_string(redact=True) == (
        "host=localhost port=5432 user=lega_in password=**** dbname=lega sslmode=disable"
    )
    assert DatabaseConfig(sslmode="disable").connect_string(redact=True).startswith(
        "host=localhost port=5432 user= password= dbname="
    )


def test_database_config_is_immutable_and_hides_password() -> None:
    config = DatabaseConfig(password="hunter2")

    with pytest.raises(ValidationError):
        config.host = "elsewhere"  # type: ignore[misc]
    assert "hunter2" not in repr(config)


def test_database_config_rejects_unknown_sslmode() -> None:
    with pytest.raises(ValidationError):
        DatabaseConfig(sslmode="sometimes")  # type: ignore[arg-type]


def test_retry_policy_defaults() -> None:
    policy = RetryPolicy()

    assert policy.connect_timeout == 3600
    assert policy.fast_connect_timeout == 120
    assert policy.fast_connect_rate == 5
    assert policy.slow_connect_rate == 60
    assert policy.unbounded is False
    assert RetryPolicy(connect_timeout=0).unbounded is True
    assert RetryPolicy(connect_timeout=-1).unbounded is True


def test_retry_policy_rejects_negative_rates() -> None:
    with pytest.raises(ValidationError):
        RetryPolicy(fast_connect_rate=-1)


def test_load_config_returns_defaults_when_missing(tmp_path: Path) -> None:
    result = load_config(tmp_path / "config.toml", environ={})

    assert result == AppConfig()


def test_load_config_reads_values(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        """
backend = "postgres"
log_level = "DEBUG"

[database]
host = "db.internal"
port = 5433
user = "lega_in"
password = "lega_in"
database = "lega"
sslmode = "verify-ca"
ca_cert = "/certs/ca.pem"

[retry]
connect_timeout = 0
fast_connect_rate = 2
"""
    )

    result = load_config(config_path, environ={})

    assert result.log_level == "DEBUG"
    assert result.database.host == "db.internal"
    assert result.database.port == 5433
    assert result.database.sslmode == "verify-ca"
    assert result.database.ca_cert == "/certs/ca.pem"
    assert result.retry.unbounded is True
    assert result.retry.fast_connect_rate == 2
    assert result.retry.slow_connect_rate == 60


def test_load_config_applies_environment_overrides(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text('[database]\nhost = "from-file"\nuser = "file-user"\n')

    result = load_config(
        config_path,
        environ={"INGESTDB_DB_HOST": "from-env", "INGESTDB_DB_PORT": "6543", "INGESTDB_DB_PASSWORD": "s3cret"},
    )

    assert result.database.host == "from-env"
    assert result.database.port == 6543
    assert result.database.user == "file-user"
    assert result.database.password == "s3cret"


def test_load_config_honours_config_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "custom.toml"
    config_path.write_text('backend = "other"\n')
    monkeypatch.setenv("INGESTDB_CONFIG", str(config_path))

    assert config_module.config_path() == config_path
    assert load_config(environ={}).backend == "other"


def test_load_config_rejects_invalid_toml(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("backend = [unterminated")

    with pytest.raises(ConfigError, match="config.toml"):
        load_config(config_path, environ={})


def test_load_config_rejects_invalid_values(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text('[database]\nport = "not-a-port"\n')

    with pytest.raises(ConfigError, match="Invalid configuration"):
        load_config(config_path, environ={})


def test_with_retry_returns_updated_copy() -> None:
    config = AppConfig()

    updated = config.with_retry(connect_timeout=5)

    assert updated.retry.connect_timeout == 5
    assert config.retry.connect_timeout == 3600
