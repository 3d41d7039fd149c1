"""Tests for document security exceptions."""

from core.errors.exceptions import PermanentError
from core.security.exceptions import DocumentFormatError, DocumentSecurityError
from core.types import ErrorCategory


class TestDocumentSecurityError:

    def test_defaults_errors_to_message(self):
        err = DocumentSecurityError("XML structure too deep")
        assert err.errors == ["XML structure too deep"]
        assert err.warnings == []

    def test_keeps_errors_and_warnings(self):
        err = DocumentSecurityError(
            "Security validation failed",
            errors=["XML External Entity (XXE) patterns detected"],
            warnings=["Entity references detected - will be stripped for security"],
        )
        assert err.errors == ["XML External Entity (XXE) patterns detected"]
        assert len(err.warnings) == 1
        assert err.context["errors"] == err.errors

    def test_is_permanent(self):
        err = DocumentSecurityError("x")
        assert isinstance(err, PermanentError)
        assert err.category == ErrorCategory.PERMANENT
        assert not err.is_retryable

    def test_cause(self):
        cause = ValueError("entities forbidden")
        err = DocumentSecurityError("blocked", cause=cause)
        assert err.cause is cause


class TestDocumentFormatError:

    def test_is_permanent(self):
        assert DocumentFormatError("Invalid XML format").category == ErrorCategory.PERMANENT
