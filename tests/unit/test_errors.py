"""Unit tests for the error hierarchy."""

from namespace_manager.errors import (
    BrokerAPIError,
    ConfigurationError,
    EntityAlreadyExistsError,
    ManagerError,
    ModifyConflictError,
    NotificationError,
    StoreError,
)


class TestBrokerAPIError:
    """Test broker error classification."""

    def test_not_found(self):
        error = BrokerAPIError("DELETE users/acme-A failed", status_code=404)
        assert error.is_not_found
        assert not error.retryable
        assert "HTTP 404" in str(error)

    def test_server_errors_are_retryable(self):
        error = BrokerAPIError("GET queues/%2F failed", status_code=503)
        assert error.retryable
        assert not error.is_not_found

    def test_transport_error_has_no_status(self):
        error = BrokerAPIError("GET queues/%2F failed: timed out")
        assert error.status_code is None
        assert error.retryable

    def test_response_body_kept(self):
        error = BrokerAPIError("x", status_code=500, response_body="boom")
        assert error.response_body == "boom"
        assert str(error).startswith("RabbitMQ management API: HTTP 500")


class TestHierarchy:
    def test_store_errors(self):
        conflict = EntityAlreadyExistsError("acme")
        assert isinstance(conflict, StoreError)
        assert isinstance(conflict, ManagerError)
        assert conflict.key == "acme"
        assert conflict.category == "store"

        exhausted = ModifyConflictError("acme", 5)
        assert exhausted.retryable
        assert "5 times" in str(exhausted)

    def test_notification_error_not_retryable(self):
        error = NotificationError("send failed", status_code=502)
        assert not error.retryable
        assert error.status_code == 502

    def test_str_includes_user_action(self):
        error = ConfigurationError("bad backend", user_action="Fix STORE_BACKEND")
        assert str(error) == "bad backend\nAction required: Fix STORE_BACKEND"

    def test_categories(self):
        assert StoreError("down").category == "store"
        assert StoreError("down").retryable
        assert ConfigurationError("bad").category == "configuration"
        assert not ConfigurationError("bad").retryable
        assert NotificationError("x").category == "external"
