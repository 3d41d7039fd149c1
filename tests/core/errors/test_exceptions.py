"""
Tests for the exception hierarchy and classification helpers.
"""

import asyncio

import pytest

from core.errors.exceptions import (
    AuthError,
    AuthorizationError,
    ConnectionError,
    DirectoryConflictError,
    DirectoryError,
    PermanentError,
    ProvisioningError,
    ServerError,
    ThrottlingError,
    TimeoutError,
    TransientError,
    ValidationError,
    classify_exception,
    classify_http_status,
    is_retryable_error,
    wrap_exception,
)
from core.types import ErrorCategory


class TestProvisioningError:

    def test_message_and_defaults(self):
        err = ProvisioningError("boom")
        assert err.message == "boom"
        assert err.cause is None
        assert err.context == {}
        assert err.category == ErrorCategory.UNKNOWN
        assert str(err) == "boom"

    def test_str_includes_cause(self):
        cause = ValueError("inner")
        err = ProvisioningError("outer", cause=cause)
        assert str(err) == "outer | Caused by: inner"

    def test_context_is_kept(self):
        err = ProvisioningError("x", context={"url": "https://id.example.org"})
        assert err.context["url"] == "https://id.example.org"

    def test_retry_and_refresh_flags(self):
        assert TransientError("t").is_retryable is True
        assert PermanentError("p").is_retryable is False
        assert AuthError("a").should_refresh_auth is True
        assert TransientError("t").should_refresh_auth is False


class TestHierarchy:

    @pytest.mark.parametrize(
        "exc_class,category",
        [
            (AuthError, ErrorCategory.AUTH),
            (TimeoutError, ErrorCategory.TRANSIENT),
            (ConnectionError, ErrorCategory.TRANSIENT),
            (ValidationError, ErrorCategory.PERMANENT),
            (AuthorizationError, ErrorCategory.PERMANENT),
            (DirectoryError, ErrorCategory.PERMANENT),
            (DirectoryConflictError, ErrorCategory.PERMANENT),
        ],
    )
    def test_categories(self, exc_class, category):
        assert exc_class("x").category == category

    def test_throttling_error_keeps_retry_after(self):
        err = ThrottlingError("slow down", retry_after=12.5)
        assert err.retry_after == 12.5
        assert err.is_retryable

    def test_server_error_keeps_status(self):
        err = ServerError("HTTP 503", status=503)
        assert err.status == 503
        assert isinstance(err, TransientError)

    def test_directory_error_keeps_status_and_body(self):
        err = DirectoryConflictError("exists", status=409, body="User exists with same username")
        assert isinstance(err, DirectoryError)
        assert err.status == 409
        assert "same username" in err.body

    def test_local_timeout_does_not_shadow_builtin_catch(self):
        """Our TimeoutError is a ProvisioningError, not the builtin."""
        assert issubclass(TimeoutError, ProvisioningError)
        assert not issubclass(TimeoutError, asyncio.TimeoutError)


class TestClassifyHttpStatus:

    @pytest.mark.parametrize(
        "status,expected",
        [
            (200, ErrorCategory.UNKNOWN),
            (204, ErrorCategory.UNKNOWN),
            (401, ErrorCategory.AUTH),
            (408, ErrorCategory.TRANSIENT),
            (429, ErrorCategory.TRANSIENT),
            (400, ErrorCategory.PERMANENT),
            (403, ErrorCategory.PERMANENT),
            (404, ErrorCategory.PERMANENT),
            (409, ErrorCategory.PERMANENT),
            (500, ErrorCategory.TRANSIENT),
            (503, ErrorCategory.TRANSIENT),
        ],
    )
    def test_status_mapping(self, status, expected):
        assert classify_http_status(status) == expected


class TestClassifyException:

    def test_provisioning_error_keeps_category(self):
        assert classify_exception(AuthError("x")) == ErrorCategory.AUTH

    def test_connection_markers_are_transient(self):
        assert classify_exception(OSError("Connection refused")) == ErrorCategory.TRANSIENT

    def test_timeout_is_transient(self):
        assert classify_exception(asyncio.TimeoutError()) == ErrorCategory.TRANSIENT

    def test_unauthorized_is_auth(self):
        assert classify_exception(RuntimeError("401 Unauthorized")) == ErrorCategory.AUTH

    def test_forbidden_is_permanent(self):
        assert classify_exception(RuntimeError("403 Forbidden")) == ErrorCategory.PERMANENT

    def test_unknown(self):
        assert classify_exception(ValueError("odd")) == ErrorCategory.UNKNOWN

    def test_is_retryable_error(self):
        assert is_retryable_error(ServerError("x", status=502))
        assert not is_retryable_error(ValidationError("bad"))
        assert is_retryable_error(OSError("connection reset by peer"))
        assert not is_retryable_error(KeyError("k"))


class TestWrapException:

    def test_provisioning_error_returned_with_merged_context(self):
        err = DirectoryError("x", context={"a": 1})
        wrapped = wrap_exception(err, context={"b": 2})
        assert wrapped is err
        assert err.context == {"a": 1, "b": 2}

    def test_timeout_becomes_timeout_error(self):
        original = asyncio.TimeoutError()
        wrapped = wrap_exception(original)
        assert isinstance(wrapped, TimeoutError)
        assert wrapped.cause is original
        assert wrapped.context["error_type"] == "timeout"

    def test_connection_failure_becomes_connection_error(self):
        wrapped = wrap_exception(OSError("connection reset"))
        assert isinstance(wrapped, ConnectionError)

    def test_auth_text_becomes_auth_error(self):
        assert isinstance(wrap_exception(RuntimeError("invalid token")), AuthError)

    def test_permanent_text_becomes_permanent_error(self):
        assert isinstance(wrap_exception(RuntimeError("404 not found")), PermanentError)

    def test_default_class_for_unknown(self):
        wrapped = wrap_exception(ValueError("odd"), default_class=ValidationError)
        assert isinstance(wrapped, ValidationError)
