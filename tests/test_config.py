# pyright: reportUnknownMemberType=false
import logging

import pytest

from tether.networking.config import (
    ConnectionInfo,
    PollOptions,
    TransportConfig,
)
from tether.networking.errors import InvalidArgumentError


def test_connection_defaults_are_stable():
    info = ConnectionInfo(url="https://example.com")

    assert info.user is None
    assert info.password is None
    assert info.allow_insecure_authentication is False
    assert info.timeout_seconds == 120.0
    assert dict(info.headers) == {}
    assert info.has_credentials is False


def test_connection_headers_are_immutable_copies():
    headers = {"X-Test": "1"}
    info = ConnectionInfo(url="https://example.com", headers=headers)
    headers["X-Test"] = "2"

    assert info.headers["X-Test"] == "1"
    with pytest.raises(TypeError):
        info.headers["X-Test"] = "3"  # type: ignore[index]


def test_connection_rejects_missing_url():
    with pytest.raises(InvalidArgumentError) as excinfo:
        ConnectionInfo(url=None)  # type: ignore[arg-type]

    assert excinfo.value.argument == "connection.url"


def test_connection_rejects_non_positive_timeout():
    with pytest.raises(InvalidArgumentError) as excinfo:
        ConnectionInfo(url="https://example.com", timeout_seconds=0)
    assert excinfo.value.argument == "connection.timeout"

    with pytest.raises(InvalidArgumentError):
        ConnectionInfo(url="https://example.com", timeout_seconds=-1)


def test_coerce_accepts_string_url():
    info = ConnectionInfo.coerce("http://example.com/rpc")

    assert info == ConnectionInfo(url="http://example.com/rpc")


def test_coerce_returns_existing_instance():
    info = ConnectionInfo(url="https://example.com")

    assert ConnectionInfo.coerce(info) is info


def test_coerce_accepts_camel_case_mapping():
    info = ConnectionInfo.coerce(
        {
            "url": "http://example.com",
            "user": "alice",
            "password": "secret",
            "allowInsecureAuthentication": True,
            "timeout": 2.5,
            "headers": {"X-Api-Key": 42},
        }
    )

    assert info.allow_insecure_authentication is True
    assert info.timeout_seconds == 2.5
    assert info.headers == {"X-Api-Key": 42}
    assert info.has_credentials is True


def test_coerce_mapping_without_url_redacts_password():
    with pytest.raises(InvalidArgumentError) as excinfo:
        ConnectionInfo.coerce({"user": "alice", "password": "secret"})

    error = excinfo.value
    assert error.argument == "connection.url"
    assert error.context["value"]["password"] == "[REDACTED]"
    assert "secret" not in str(error)


def test_coerce_ignores_unknown_keys(caplog):
    caplog.set_level(logging.DEBUG, logger="tether.networking.config")

    info = ConnectionInfo.coerce(
        {"url": "https://example.com", "throttleLimit": 5, "retries": 3}
    )

    assert info == ConnectionInfo(url="https://example.com")
    assert "['retries', 'throttleLimit']" in caplog.text


def test_coerce_rejects_other_types():
    with pytest.raises(InvalidArgumentError):
        ConnectionInfo.coerce(42)  # type: ignore[arg-type]


def test_repr_hides_password():
    info = ConnectionInfo(
        url="https://example.com", user="alice", password="secret"
    )

    assert "secret" not in repr(info)
    assert "[REDACTED]" in repr(info)


def test_poll_options_defaults_are_stable():
    options = PollOptions()

    assert options.timeout_seconds is None
    assert options.floor_seconds == 0.0
    assert options.ceiling_seconds == 10.0
    assert options.interval_seconds == 0.25
    assert options.retry_limit is None
    assert options.once_block is None


@pytest.mark.parametrize(
    "kwargs",
    [
        {"timeout_seconds": 0},
        {"timeout_seconds": -1},
        {"floor_seconds": -0.1},
        {"floor_seconds": 2.0, "ceiling_seconds": 1.0},
        {"interval_seconds": -1},
        {"retry_limit": -1},
        {"once_block": "block"},
    ],
)
def test_poll_options_reject_invalid_values(kwargs):
    with pytest.raises(ValueError):
        PollOptions(**kwargs)


def test_transport_config_defaults_are_stable():
    config = TransportConfig()

    assert config.user_agent is None
    assert dict(config.default_headers) == {}
    assert config.verify_tls is True


def test_transport_config_default_headers_are_independent():
    first = TransportConfig()
    second = TransportConfig()

    assert first.default_headers is not second.default_headers


def test_transport_config_copies_external_headers_input():
    headers = {"X-Test": "1"}
    config = TransportConfig(default_headers=headers)
    headers["X-Test"] = "2"

    assert config.default_headers["X-Test"] == "1"
    with pytest.raises(TypeError):
        config.default_headers["X-Test"] = "2"  # type: ignore[index]
