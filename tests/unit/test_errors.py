"""
Unit tests for serverdock/errors.py - Custom error classes.
"""

import pytest

from serverdock.errors import (
    ConnectionFailedError,
    NoActiveConnectionError,
    QueryDeletionError,
    ResolutionError,
    ServerDockError,
    ServerNotFoundError,
    ServerNotRunningError,
    UnsupportedConnectionKindError,
    WorkerProvisioningError,
)


class TestServerDockError:
    """Tests for base ServerDockError class."""

    def test_create_error(self):
        """Test creating a basic error."""
        error = ServerDockError(code="test_error", message="Test message")
        assert error.code == "test_error"
        assert error.message == "Test message"
        assert error.details is None

    def test_to_dict_without_details(self):
        """Test to_dict returns an empty details dict."""
        result = ServerDockError(code="my_code", message="My message").to_dict()

        assert result == {"code": "my_code", "message": "My message", "details": {}}

    def test_str_is_message(self):
        """Test str() renders the message."""
        assert str(ServerDockError(code="c", message="Readable")) == "Readable"

    def test_can_be_raised(self):
        """Test the error can be raised and caught."""
        with pytest.raises(ServerDockError) as exc_info:
            raise WorkerProvisioningError("Failed to create query.", {"serverUrl": "https://gw"})

        assert exc_info.value.code == "worker_provisioning_failed"
        assert exc_info.value.details == {"serverUrl": "https://gw"}


class TestResolutionErrors:
    """Tests for connection resolution failures."""

    def test_server_not_found(self):
        error = ServerNotFoundError("http://localhost:10000")
        assert isinstance(error, ResolutionError)
        assert error.message == "No connections or server found"
        assert error.details == {"connectionUrl": "http://localhost:10000"}
        assert error.hint is None

    def test_server_not_found_with_hint(self):
        error = ServerNotFoundError("u", hint="try another")
        assert error.to_dict()["hint"] == "try another"

    def test_server_not_running(self):
        assert ServerNotRunningError("u").message == "Server is not running"

    def test_no_active_connection_has_hint(self):
        """Test the gateway failure carries a login hint."""
        error = NoActiveConnectionError("https://gw")
        assert error.message == "No active connection"
        assert "login" in error.hint
        assert error.to_dict()["hint"] == error.hint

    def test_connection_failed_with_reason(self):
        """Test the reason is reported in details."""
        error = ConnectionFailedError("u", "refused")
        assert error.message == "Failed to connect to server"
        assert error.details == {"connectionUrl": "u", "reason": "refused"}

    def test_connection_failed_without_reason(self):
        assert ConnectionFailedError("u").details == {"connectionUrl": "u"}

    def test_unsupported_connection(self):
        error = UnsupportedConnectionKindError("u")
        assert error.message == "Code execution is only supported for Core / Core+ connections."
        assert "hint" not in error.to_dict()


class TestQueryDeletionError:
    def test_message_and_serials(self):
        error = QueryDeletionError(["1", "2"], "timeout")
        assert error.message == "Failed to delete queries: timeout"
        assert error.details == {"serials": ["1", "2"]}
